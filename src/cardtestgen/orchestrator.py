"""Validate, fix and execute loop for one card/test-type pair.

Each outer iteration consumes one attempt. Validation errors go to the fixer and
the loop continues only while the fixer makes progress and errors remain; a
clean validation runs the tests, and a failed run feeds its classified errors to
the fixer under the same rule.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Sequence

from .models import AttemptRecord, ExecutionResult, FixAttemptState, FixResult, ValidationResult

Validator = Callable[[], ValidationResult]
Fixer = Callable[[Sequence[str]], FixResult]
Executor = Callable[[], Awaitable[ExecutionResult]]


class RetryOrchestrator:
    def __init__(self, validate: Validator, fix: Fixer, execute: Executor, max_attempts: int = 3) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be a positive integer.")
        self.validate = validate
        self.fix = fix
        self.execute = execute
        self.max_attempts = max_attempts
        self.logger = logging.getLogger("cardtestgen.orchestrator")

    async def run(self) -> FixAttemptState:
        state = FixAttemptState(max_attempts=self.max_attempts)
        while state.attempt < state.max_attempts:
            state.attempt += 1
            validation = self.validate()
            record = AttemptRecord(number=state.attempt, validation=validation)
            state.history.append(record)
            self.logger.info("Attempt %s/%s: %s validation error(s)", state.attempt, state.max_attempts, len(validation.errors))

            if validation.errors:
                if self._apply_fixes(state, record, validation.errors):
                    continue
                break

            execution = await self.execute()
            record.execution = execution
            if execution.success:
                state.outcome = "success"
                state.remaining_errors = []
                break
            runtime_errors = [str(error) for error in execution.errors] or [execution.error or "Test execution failed"]
            if not self._apply_fixes(state, record, runtime_errors):
                break

        if state.outcome is None:
            state.outcome = "exhausted"
        self.logger.info("Run-and-fix finished: %s after %s attempt(s)", state.outcome, state.attempt)
        return state

    def _apply_fixes(self, state: FixAttemptState, record: AttemptRecord, errors: Sequence[str]) -> bool:
        """Run the fixer; True when another iteration should follow."""
        result = self.fix(list(errors))
        record.fix = result
        state.fixes_applied.extend(result.fixes_applied)
        state.remaining_errors = list(result.remaining_errors)
        if not result.fixes_applied:
            state.outcome = "unfixable"
            return False
        if not result.remaining_errors:
            state.outcome = "patched"
            return False
        return True


def render_fix_report(card_type: str, test_type: str, state: FixAttemptState) -> str:
    lines = [f"# Run and fix: {card_type} / {test_type}", ""]
    for record in state.history:
        lines.append(f"## Attempt {record.number}")
        lines.append(f"- Validation: {'valid' if record.validation.valid else f'{len(record.validation.errors)} error(s)'}")
        lines.extend(f"  - {error}" for error in record.validation.errors)
        if record.fix is not None:
            lines.append(f"- Fixes applied: {len(record.fix.fixes_applied)}")
            lines.extend(f"  - {fix}" for fix in record.fix.fixes_applied)
            lines.extend(f"  - Backup: {path}" for path in record.fix.backups)
        if record.execution is not None:
            status = "passed" if record.execution.success else "failed"
            lines.append(f"- Execution: {status} in {record.execution.duration_ms}ms")
            lines.extend(f"  - [{error.kind}] {error.message}" for error in record.execution.errors)
        lines.append("")

    lines.append("## Summary")
    lines.append(f"- Outcome: {state.outcome}")
    lines.append(f"- Attempts: {state.attempt}/{state.max_attempts}")
    lines.append(f"- Fixes applied: {len(state.fixes_applied)}")
    if state.remaining_errors:
        lines.append("- Remaining errors:")
        lines.extend(f"  - {error}" for error in state.remaining_errors)
    return "\n".join(lines) + "\n"
