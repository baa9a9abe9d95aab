"""
Evaluation log utilities for the OKP forecast evaluation.

Each run can append a timestamped section to a markdown evaluation log
(``analysis/eval_OKP.md`` by default) so that results of successive runs
are kept side by side.

Template Format:
## <ISO timestamp>Z - <origin>

```text
<console summary>
```
---
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_EVAL_FILE = Path("analysis") / "eval_OKP.md"


def format_eval_section(origin: str, content: Optional[str], timestamp: Optional[datetime] = None) -> str:
    """
    Render one evaluation log section.

    Parameters
    ----------
    origin : str
        Logical origin of the content (e.g. the input CSV)
    content : str
        Console transcript to include
    timestamp : datetime, optional
        UTC time of the run; defaults to now
    """
    ts = (timestamp or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%S.%f") + "Z"
    header = f"## {ts} - {origin}\n\n"
    block = "```text\n" + (content.rstrip() if content is not None else "") + "\n```\n\n---\n"
    return header + block


def append_eval_log(origin: str, content: str, eval_file: Optional[Path] = None) -> Path:
    """
    Append a timestamped section to the evaluation log.

    Parameters
    ----------
    origin : str
        Logical origin of the content (e.g., 'data/okp_costs.csv')
    content : str
        Console transcript to append
    eval_file : Path, optional
        Explicit path to the evaluation log; defaults to analysis/eval_OKP.md

    Returns
    -------
    Path
        The log file written to
    """
    eval_file = Path(eval_file) if eval_file is not None else DEFAULT_EVAL_FILE
    eval_file.parent.mkdir(parents=True, exist_ok=True)
    with open(eval_file, "a", encoding="utf-8") as f:
        f.write(format_eval_section(origin, content))
    logger.info("Appended evaluation summary to %s", eval_file)
    return eval_file
