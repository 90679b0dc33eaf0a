"""Ordered provisioning and teardown pipelines.

A pipeline is a list of named steps run in order on the caller's thread.

- :class:`ProvisioningPipeline` stops at the first failing step, runs its
  rollback callback (best effort) and raises :class:`ProvisioningError` for
  the original cause.
- :class:`TeardownPipeline` runs every step regardless of earlier failures
  and reports all of them as a single :class:`TeardownError`. Steps marked
  ``abort_on_failure`` stop the teardown immediately instead.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from clusterdeck.lib.errors import DeploymentError, ProvisioningError, TeardownError


@dataclass(frozen=True)
class Step:
    """A named pipeline step.

    Attributes:
        name: Step name used in logs and errors
        action: Callable performing the step
        skip_if: Optional predicate; the step is skipped when it returns True
        abort_on_failure: Teardown only; a failure stops the whole teardown
    """

    name: str
    action: Callable[[], None]
    skip_if: Callable[[], bool] | None = None
    abort_on_failure: bool = False

    def should_skip(self) -> bool:
        return self.skip_if is not None and self.skip_if()


def _describe(exc: Exception) -> str:
    if isinstance(exc, DeploymentError):
        return exc.message
    return str(exc) or type(exc).__name__


class ProvisioningPipeline:
    """Runs create steps in order and rolls back on the first failure."""

    def __init__(
        self,
        steps: Sequence[Step],
        rollback: Callable[[], None],
        logger: logging.Logger,
    ) -> None:
        self._steps = list(steps)
        self._rollback = rollback
        self._logger = logger

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self._steps]

    def run(self) -> None:
        """Run every step.

        Raises:
            ProvisioningError: If a step fails, after rollback was attempted
        """
        for step in self._steps:
            if step.should_skip():
                self._logger.info("Skipping step: %s", step.name)
                continue

            self._logger.info("Running step: %s", step.name)
            try:
                step.action()
            except Exception as exc:
                reason = _describe(exc)
                self._logger.error("Step '%s' failed: %s", step.name, reason)
                self._run_rollback(step.name)
                raise ProvisioningError(step=step.name, message=reason) from exc

    def _run_rollback(self, failed_step: str) -> None:
        self._logger.info("Rolling back after failed step '%s'", failed_step)
        try:
            self._rollback()
        except DeploymentError as exc:
            self._logger.error("Rollback incomplete: %s", exc.message)
        except Exception:
            self._logger.exception("Rollback raised an unexpected error")
        else:
            self._logger.info("Rollback finished")


class TeardownPipeline:
    """Runs delete steps in order, continuing past failures."""

    def __init__(self, steps: Sequence[Step], logger: logging.Logger) -> None:
        self._steps = list(steps)
        self._logger = logger

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self._steps]

    def run(self) -> None:
        """Run every step.

        Raises:
            TeardownError: If one or more steps failed
            DeploymentError: Re-raised as-is from an ``abort_on_failure`` step
        """
        failures: dict[str, str] = {}
        for step in self._steps:
            if step.should_skip():
                self._logger.debug("Nothing to tear down for step: %s", step.name)
                continue

            self._logger.info("Running teardown step: %s", step.name)
            try:
                step.action()
            except Exception as exc:
                if step.abort_on_failure:
                    self._logger.error(
                        "Teardown aborted at step '%s': %s", step.name, _describe(exc)
                    )
                    raise
                failures[step.name] = _describe(exc)
                self._logger.error(
                    "Teardown step '%s' failed: %s", step.name, failures[step.name]
                )

        if failures:
            raise TeardownError(failures)
