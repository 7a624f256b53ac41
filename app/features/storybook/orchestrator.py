# app/features/storybook/orchestrator.py
from __future__ import annotations

import asyncio
import concurrent.futures
import functools
from typing import Callable, Dict, Optional, Set

from app.config import config
from app.logger import get_logger
from .schemas import GenerationStatus, PageImageOutcome, Story, StoryState, UserInput
from .service import (
    StorybookError,
    StructureGenerationError,
    fallback_image_url,
    generate_page_image,
    generate_story_structure,
)

log = get_logger(__name__)

USER_ERROR_MESSAGE = "Something went wrong while weaving the magic. Please try again."

S = GenerationStatus
_TRANSITIONS: Dict[GenerationStatus, Set[GenerationStatus]] = {
    S.IDLE: {S.GENERATING_STORY},
    S.GENERATING_STORY: {S.GENERATING_IMAGES, S.ERROR, S.IDLE},
    S.GENERATING_IMAGES: {S.COMPLETED, S.ERROR, S.IDLE},
    S.COMPLETED: {S.IDLE},
    S.ERROR: {S.GENERATING_STORY, S.IDLE},
}

class GenerationInProgressError(StorybookError):
    """A new story was requested while another one is still active."""

def merge_page(story: Story, index: int, outcome: PageImageOutcome) -> Story:
    """
    Return a new Story where only page `index` is settled with `outcome`.
    Every other page is carried over as the same object.
    """
    page = story.pages[index]
    if not page.is_loading_image:
        raise ValueError(f"page {page.page_number} already settled")
    pages = list(story.pages)
    pages[index] = page.model_copy(update={"image_url": outcome.image_url, "is_loading_image": False})
    return story.model_copy(update={"pages": tuple(pages)})

class StoryOrchestrator:
    """
    Owns the process-wide generation status and the current story snapshot.

    All state lives on the event loop. Blocking model calls run on two private
    thread pools, one for the structure call and one for illustrations. Their
    results are merged back one page at a time. Each run gets a generation
    token, and results carrying a stale token (after a reset or a newer run)
    are dropped.
    """

    def __init__(
        self,
        *,
        structure_fn: Callable[[UserInput], Story] = generate_story_structure,
        image_fn: Callable[..., str] = generate_page_image,
        image_timeout: Optional[float] = None,
        max_workers: Optional[int] = None,
    ):
        self._structure_fn = structure_fn
        self._image_fn = image_fn
        timeout = config.image_timeout_seconds if image_timeout is None else image_timeout
        self._image_timeout = timeout if timeout and timeout > 0 else None
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers or config.max_workers,
            thread_name_prefix="storybook-image",
        )
        # illustrations abandoned after a reset must not hold up the next structure call
        self._structure_executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=2,
            thread_name_prefix="storybook-structure",
        )
        self._status = GenerationStatus.IDLE
        self._story: Optional[Story] = None
        self._error: Optional[str] = None
        self._generation = 0
        self._filling: Optional[int] = None
        self._images_task: Optional[asyncio.Task] = None

    # ----- state -----

    @property
    def status(self) -> GenerationStatus:
        return self._status

    @property
    def story(self) -> Optional[Story]:
        return self._story

    def snapshot(self) -> StoryState:
        story = self._story
        if story is None:
            return StoryState(status=self._status, error=self._error)
        return StoryState(
            status=self._status,
            story=story,
            error=self._error,
            pages_ready=sum(1 for p in story.pages if not p.is_loading_image),
            total_pages=len(story.pages),
        )

    def _set_status(self, new: GenerationStatus) -> None:
        if new not in _TRANSITIONS[self._status]:
            raise RuntimeError(f"illegal status transition {self._status.value} -> {new.value}")
        log.debug(f"status {self._status.value} -> {new.value}")
        self._status = new

    def _fail(self) -> None:
        self._story = None
        self._error = USER_ERROR_MESSAGE
        self._set_status(GenerationStatus.ERROR)

    def reset(self) -> StoryState:
        """Discard the current story. Calls still in flight finish but are ignored."""
        self._generation += 1
        self._filling = None
        self._story = None
        self._error = None
        if self._status is not GenerationStatus.IDLE:
            self._set_status(GenerationStatus.IDLE)
        log.info("storybook reset")
        return self.snapshot()

    # ----- phase 1: structure -----

    async def request_story(self, user_input: UserInput) -> Story:
        if self._status not in (GenerationStatus.IDLE, GenerationStatus.ERROR):
            raise GenerationInProgressError(
                f"cannot start a new story while status is {self._status.value}; reset first"
            )
        self._generation += 1
        token = self._generation
        self._story = None
        self._error = None
        self._set_status(GenerationStatus.GENERATING_STORY)
        log.info(f"[run {token}] generating {user_input.page_count}-page story for {user_input.child_name!r}")

        loop = asyncio.get_running_loop()
        try:
            story = await loop.run_in_executor(self._structure_executor, self._structure_fn, user_input)
        except Exception as e:
            log.error(f"[run {token}] Story Generation Error: {e}")
            if token == self._generation:
                self._fail()
            if isinstance(e, StructureGenerationError):
                raise
            raise StructureGenerationError(str(e)) from e

        if token != self._generation:
            log.info(f"[run {token}] story arrived after reset; discarded")
            return story

        self._story = story
        self._set_status(GenerationStatus.GENERATING_IMAGES)
        return story

    # ----- phase 2: illustrations -----

    async def _attempt_image(self, index: int, prompt: str) -> PageImageOutcome:
        loop = asyncio.get_running_loop()
        # the SDK call gets the same deadline so its thread is freed when we stop waiting
        call = loop.run_in_executor(
            self._executor, functools.partial(self._image_fn, prompt, timeout=self._image_timeout)
        )
        try:
            if self._image_timeout:
                image_url = await asyncio.wait_for(call, self._image_timeout)
            else:
                image_url = await call
        except asyncio.TimeoutError:
            log.warning(f"image for page {index + 1} timed out after {self._image_timeout}s; using fallback")
            return PageImageOutcome(kind="fallback", image_url=fallback_image_url(index))
        except Exception as e:
            log.error(f"Failed to generate image for page {index + 1}: {e}")
            return PageImageOutcome(kind="fallback", image_url=fallback_image_url(index))

        if not image_url:
            log.warning(f"empty image reference for page {index + 1}; using fallback")
            return PageImageOutcome(kind="fallback", image_url=fallback_image_url(index))
        return PageImageOutcome(kind="generated", image_url=image_url)

    async def _settle_page(self, token: int, index: int, prompt: str) -> PageImageOutcome:
        outcome = await self._attempt_image(index, prompt)
        if token != self._generation or self._story is None:
            log.debug(f"[run {token}] page {index + 1} settled after reset; ignored")
            return outcome
        self._story = merge_page(self._story, index, outcome)
        log.info(f"[run {token}] page {index + 1} settled ({outcome.kind})")
        return outcome

    async def fill_images(self, story: Story) -> Optional[Story]:
        """
        Illustrate every page of `story` concurrently and wait until all have settled.
        Returns the final snapshot, or None when the story was discarded meanwhile.
        """
        if (
            story is not self._story
            or self._status is not GenerationStatus.GENERATING_IMAGES
            or self._filling == self._generation
        ):
            log.info("fill_images called for a story that is not awaiting images; skipped")
            return None

        token = self._generation
        self._filling = token
        try:
            outcomes = await asyncio.gather(
                *(self._settle_page(token, i, p.image_prompt) for i, p in enumerate(story.pages))
            )
        except Exception:
            log.exception(f"[run {token}] illustration phase failed")
            if token == self._generation:
                self._fail()
            raise

        if token != self._generation:
            return None

        fallbacks = sum(1 for o in outcomes if o.is_fallback)
        log.info(f"[run {token}] all {len(outcomes)} pages settled ({fallbacks} fallback)")
        self._set_status(GenerationStatus.COMPLETED)
        return self._story

    # ----- entry points -----

    async def generate(self, user_input: UserInput) -> Optional[Story]:
        story = await self.request_story(user_input)
        return await self.fill_images(story)

    async def start(self, user_input: UserInput) -> Story:
        """Run the structure phase, then keep illustrating in the background."""
        story = await self.request_story(user_input)
        self._images_task = asyncio.create_task(self._fill_in_background(story))
        return story

    async def _fill_in_background(self, story: Story) -> None:
        try:
            await self.fill_images(story)
        except Exception as e:
            # fill_images already logged it and moved status to ERROR
            log.debug(f"background illustration run ended with {e!r}")

    def close(self) -> None:
        if self._images_task and not self._images_task.done():
            self._images_task.cancel()
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._structure_executor.shutdown(wait=False, cancel_futures=True)
