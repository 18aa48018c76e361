# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging

from .events import BaseEvent, StepFailed, StepWarning, LockTimedOut, ConfigRejected


class LoggerObserver:
    """
    Mirrors every event into the run log as ``EventName key=value ...``.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        data = event.dict()
        for key in ("ts", "env", "target"):
            data.pop(key, None)
        fields = " ".join(f"{k}={v}" for k, v in data.items())
        level = logging.INFO
        if isinstance(event, StepWarning):
            level = logging.WARNING
        elif isinstance(event, (StepFailed, LockTimedOut, ConfigRejected)):
            level = logging.ERROR
        self.logger.log(level, "%s %s", type(event).__name__, fields)
