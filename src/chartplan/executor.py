"""Section-batched plan execution.

Commands are grouped by target section so each section is opened once, then
applied strictly in order with a settling step after each one. Per-command
failures are recorded in the report and never abort the rest of the plan.
"""

import functools
import logging
import time
from typing import Callable, Dict, List, Optional

from .contracts import Command, CommandType, ExecutedEntry, ExecutionReport, Plan, SkippedEntry
from .errors import TargetNotFoundError, UnsupportedCommandError
from .sanitizer import NOT_ALLOWED_REASON
from .sections import DEFAULT_REGISTRY, SectionRegistry
from .surface import ExecutionSurface, SectionSession

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_DELAY = 0.4
UNSUPPORTED_REASON = "unsupported"
NOT_SELECTED_REASON = "item not selected"


def group_by_section(plan: Plan) -> Dict[str, List[Command]]:
    """Selected commands per section, in order of first appearance."""

    groups: Dict[str, List[Command]] = {}
    for item in plan.items:
        if not item.selected or not item.commands:
            continue
        groups.setdefault(item.target_section, []).extend(item.commands)
    return groups


class PlanExecutor:
    def __init__(
        self,
        registry: SectionRegistry = DEFAULT_REGISTRY,
        settle: Optional[Callable[[], None]] = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
    ):
        self.registry = registry
        # Gives an eventually-consistent surface time to render between commands.
        self.settle = settle or functools.partial(time.sleep, settle_delay)

    def execute(self, plan: Plan, surface: ExecutionSurface) -> ExecutionReport:
        report = ExecutionReport()

        for item in plan.items:
            if not item.selected:
                for command in item.commands:
                    report.skipped.append(
                        SkippedEntry(
                            section_id=item.target_section,
                            command_type=command.type.value,
                            reason=NOT_SELECTED_REASON,
                        )
                    )

        groups = group_by_section(plan)
        logger.info(f"Executing {sum(len(c) for c in groups.values())} command(s) across {len(groups)} section(s)")
        for section_id, commands in groups.items():
            self._run_section(section_id, commands, surface, report)

        logger.info(f"Execution complete: {len(report.executed)} executed, {len(report.skipped)} skipped")
        return report

    def _run_section(
        self,
        section_id: str,
        commands: List[Command],
        surface: ExecutionSurface,
        report: ExecutionReport,
    ) -> None:
        runnable: List[Command] = []
        for command in commands:
            if self.registry.is_command_allowed(section_id, command.type) and command.type is not CommandType.MANUAL_ACTION:
                runnable.append(command)
            else:
                report.skipped.append(
                    SkippedEntry(section_id=section_id, command_type=command.type.value, reason=NOT_ALLOWED_REASON)
                )
        if not runnable:
            return

        logger.info(f"Processing section {section_id} with {len(runnable)} command(s)")
        attempted = 0
        try:
            with surface.open_section(section_id) as session:
                for command in runnable:
                    attempted += 1
                    self._apply(session, section_id, command, report)
                    self.settle()
        except TargetNotFoundError as exc:
            logger.warning(f"Section {section_id} failed: {exc}")
            self._skip_unattempted(section_id, runnable[attempted:], str(exc), report)
        except Exception as exc:
            logger.exception(f"Section {section_id} failed")
            self._skip_unattempted(section_id, runnable[attempted:], str(exc) or exc.__class__.__name__, report)

    def _skip_unattempted(
        self, section_id: str, commands: List[Command], reason: str, report: ExecutionReport
    ) -> None:
        # Commands already attempted keep their single report entry.
        for command in commands:
            report.skipped.append(SkippedEntry(section_id=section_id, command_type=command.type.value, reason=reason))

    def _apply(self, session: SectionSession, section_id: str, command: Command, report: ExecutionReport) -> None:
        command_type = command.type.value
        try:
            session.apply(command)
        except TargetNotFoundError as exc:
            logger.warning(f"{command_type} in {section_id} skipped: {exc}")
            report.skipped.append(SkippedEntry(section_id=section_id, command_type=command_type, reason=str(exc)))
            return
        except UnsupportedCommandError:
            logger.warning(f"{command_type} in {section_id} skipped: not supported by this surface")
            report.skipped.append(
                SkippedEntry(section_id=section_id, command_type=command_type, reason=UNSUPPORTED_REASON)
            )
            return
        except Exception as exc:
            logger.exception(f"Failed to execute {command_type} in {section_id}")
            report.skipped.append(
                SkippedEntry(section_id=section_id, command_type=command_type, reason=str(exc) or exc.__class__.__name__)
            )
            return
        report.executed.append(ExecutedEntry(section_id=section_id, command_type=command_type))
