"""Diagnostics sink for finished crawl jobs."""

import asyncio
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Set, Union

from .timing import TimingLedger

logger = logging.getLogger(__name__)


class DiagnosticsSink:
    """Records the timing ledger and outcome of every finished job.

    Recording never raises. Inside a running event loop the file append is
    handed to a single background thread, so lines keep their order and the
    loop never waits on disk.
    """

    def __init__(self, log_path: Optional[Union[str, Path]] = None):
        self.log_path = Path(log_path) if log_path else None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: Set[asyncio.Future] = set()
        if self.log_path:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="diagnostics")

    def record(self, time_measures: TimingLedger, data: Dict[str, Any], is_error: bool) -> None:
        """
        Record one finished job.

        Args:
            time_measures: The job's timing ledger
            data: ``inputtedUrl``, ``parsedParams``, ``result`` and ``errors``
            is_error: Whether the job ended in failure
        """
        try:
            steps = ", ".join(f"{event}: {ms}ms" for event, ms in time_measures.durations())
            level = logging.WARNING if is_error else logging.INFO
            logger.log(
                level,
                f"{'Failed' if is_error else 'Finished'} {data.get('inputtedUrl')} "
                f"in {time_measures.total_ms()}ms [{steps}]"
            )

            if self.log_path:
                entry = {
                    "recordedAt": datetime.now().isoformat(),
                    "isError": is_error,
                    "timeMeasures": time_measures.to_list(),
                    **data,
                }
                self._write(json.dumps(entry, default=str) + "\n")
        except Exception as e:
            logger.warning(f"Could not record diagnostics: {e}")

    def _write(self, line: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._append(line)
            return

        future = loop.run_in_executor(self._executor, self._append, line)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    def _append(self, line: str) -> None:
        try:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(line)
        except Exception as e:
            logger.warning(f"Could not write diagnostics to {self.log_path}: {e}")

    async def flush(self) -> None:
        """Wait for queued file appends to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending))
