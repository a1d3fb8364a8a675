"""Replay a synthesized plan against the live device, one step at a time."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence, Tuple

from .config import APP_LAUNCH_SECONDS, GRACE_SECONDS, STEP_SETTLE_SECONDS, VIEWPORT
from .device import DeviceController, ScreenReader, tap_point
from .matcher import find_element
from .models import ActionStep, StepOutcome
from .parser import parse_tree
from .robustness import settle

logger = logging.getLogger(__name__)


class StepSkipped(Exception):
    """A step is missing the field it targets; it is skipped and the run goes on."""


class StepFailed(RuntimeError):
    """A step could not be carried out; the run stops."""


class PlanExecutor:
    def __init__(
        self,
        reader: ScreenReader,
        controller: DeviceController,
        *,
        viewport: Tuple[int, int] = VIEWPORT,
        settle_seconds: float = STEP_SETTLE_SECONDS,
        launch_seconds: float = APP_LAUNCH_SECONDS,
        grace_seconds: float = GRACE_SECONDS,
    ) -> None:
        self.reader = reader
        self.controller = controller
        self.viewport = viewport
        self.settle_seconds = settle_seconds
        self.launch_seconds = launch_seconds
        self.grace_seconds = grace_seconds

    async def execute(
        self,
        steps: Sequence[ActionStep],
        on_step: Optional[Callable[[StepOutcome], None]] = None,
    ) -> List[StepOutcome]:
        """Run ``steps`` in order and return one outcome per attempted step.

        ``on_step`` is called with each outcome as soon as it is known. A hard
        failure or unexpected error ends the run early. The executor always
        waits the grace delay before returning.
        """
        outcomes: List[StepOutcome] = []

        def record(outcome: StepOutcome) -> None:
            outcomes.append(outcome)
            if on_step is not None:
                on_step(outcome)

        total = len(steps)
        for index, step in enumerate(steps):
            logger.info("--- [Executing step %s/%s] --- %s", index + 1, total, step.action)
            await settle(self.settle_seconds)
            try:
                detail = await self._run_step(step)
            except StepSkipped as exc:
                logger.error("Step %s (%s) skipped: %s", index + 1, step.action, exc)
                record(StepOutcome(index=index, action=step.action, status="skipped", detail=str(exc)))
                continue
            except Exception as exc:  # noqa: BLE001 - any error aborts the run
                logger.error("Step %s (%s) failed, aborting run: %s", index + 1, step.action, exc)
                record(StepOutcome(index=index, action=step.action, status="failed", detail=str(exc)))
                break
            record(StepOutcome(index=index, action=step.action, status="ok", detail=detail))
        else:
            logger.info("Plan execution finished successfully.")

        # Leave the final state on screen for a moment before ending the run.
        await settle(self.grace_seconds)
        return outcomes

    async def _run_step(self, step: ActionStep) -> Optional[str]:
        if step.action == "open_app":
            return await self._open_app(step.app_name)
        if step.action == "tap":
            return await self._tap(step.element_text, step.role_filter)
        if step.action == "type":
            if not step.text or not step.text.strip():
                raise StepSkipped("type action is missing 'text'")
            await self.controller.type_text(step.text)
            return f"typed {len(step.text)} characters"
        if step.action == "back":
            await self.controller.back()
            return None
        if step.action == "home":
            await self.controller.home()
            return None
        raise StepFailed(f"Unsupported action: {step.action}")

    async def _open_app(self, app_name: Optional[str]) -> str:
        if not app_name or not app_name.strip():
            raise StepSkipped("open_app action is missing 'app_name'")
        package = await self._resolve_package(app_name)
        if package is None:
            raise StepFailed(f"Could not find package for app: {app_name}")
        logger.debug("Opening app %s (package %s)", app_name, package)
        if not await self.controller.launch_app(package):
            raise StepFailed(f"Failed to open app: {app_name}")
        await settle(self.launch_seconds)
        return package

    async def _resolve_package(self, app_name: str) -> Optional[str]:
        wanted = app_name.strip().lower()
        for label, package in (await self.controller.installed_apps()).items():
            if label.strip().lower() == wanted:
                return package
        return None

    async def _tap(self, element_text: Optional[str], role_filter: Optional[str]) -> str:
        if not element_text or not element_text.strip():
            raise StepSkipped("tap action is missing 'element_text'")
        elements = parse_tree(await self.reader.capture_tree(), *self.viewport)
        element = find_element(elements, element_text, role_filter)
        if element is None:
            raise StepFailed(f"Could not find element '{element_text}' on the current screen")
        point = tap_point(element)
        if point is None:
            raise StepFailed(f"Could not parse bounds for element '{element_text}'")
        logger.debug("Tapping on '%s' at %s", element_text, point)
        await self.controller.tap(*point)
        return f"tapped at {point[0]},{point[1]}"


__all__ = ["PlanExecutor", "StepFailed", "StepSkipped"]
