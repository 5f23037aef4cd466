from __future__ import annotations

import logging
from typing import Sequence

from .clock import Clock, system_clock_ms
from .effects import EffectRegistry
from .types import RecoveryReport, RecoveryState

logger = logging.getLogger(__name__)


class TimerRecoveryManager:
    """Brings persisted effects back under timer control after a restart.

    Effects that expired while the process was down are expired one by one,
    in order, so every undo hook runs exactly once. Reconciling again is
    safe: subjects that already have a live timer are counted, not rearmed.
    """

    def __init__(self, registries: Sequence[EffectRegistry], clock: Clock | None = None):
        self._registries = list(registries)
        self._clock = clock or system_clock_ms
        self.state = RecoveryState.STOPPED

    def reconcile(self) -> RecoveryReport:
        report = RecoveryReport()
        self.state = RecoveryState.LOADING
        loaded = [(registry, registry.load()) for registry in self._registries]

        self.state = RecoveryState.RECONCILING
        now = self._clock()
        for registry, effects in loaded:
            for effect in effects:
                if not effect.is_live(now):
                    if registry.expire_now(effect):
                        report.expired += 1
                elif registry.is_armed(effect.subject_id):
                    report.already_armed += 1
                else:
                    registry.arm(effect)
                    report.armed += 1

        self.state = RecoveryState.ARMED
        logger.info(
            "Timer recovery: %s expired, %s armed, %s already armed",
            report.expired,
            report.armed,
            report.already_armed,
        )
        return report
