"""Pipeline orchestrator: capture, analyze, render, speak."""

from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import Any

from prismhud.analysis import AnalysisClient, FocusMode, VoiceOption
from prismhud.analysis.prompts import SWEEP_TRANSCRIPT_TEXT
from prismhud.audio import AudioPlayer, SpeechRecognizer
from prismhud.capture import CaptureAdapter, CaptureHandle, Facing, Frame
from prismhud.common import AudioDecodeError, DeviceError, PrismError, get_logger
from prismhud.common.events import Event, EventBus, get_event_bus
from prismhud.config import Config
from prismhud.pipeline.conversation import Conversation
from prismhud.pipeline.crops import generate_crops
from prismhud.pipeline.state import (
    AWAITING_MESSAGE,
    CAPTURING_MESSAGE,
    LISTENING_MESSAGE,
    READY_MESSAGE,
    RENDERING_MESSAGE,
    PipelineState,
    PipelineStatus,
)

SWITCHING_MESSAGE = "PRISM // RECALIBRATING OPTICS..."
NO_TRANSCRIPT_MESSAGE = "PRISM // NO VOICE COMMAND DETECTED"
FAULT_MESSAGE = "PRISM // FAULT"


class PipelineOrchestrator:
    """Pipeline orchestrator.

    Owns the state machine ``IDLE -> CAPTURING -> AWAITING_RESULT ->
    RENDERING -> IDLE``, with ``LISTENING`` entered only from IDLE. Every
    transition replaces the whole :class:`PipelineState` and publishes it
    on ``pipeline.state``. Triggers that arrive while not IDLE are dropped.
    """

    def __init__(
        self,
        config: Config,
        capture: CaptureAdapter | None = None,
        client: AnalysisClient | None = None,
        player: AudioPlayer | None = None,
        recognizer: SpeechRecognizer | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.config = config
        self._event_bus = event_bus or get_event_bus()
        self._capture = capture or CaptureAdapter(config, event_bus=self._event_bus)
        self._client = client or AnalysisClient(config)
        self._player = player or AudioPlayer(config, event_bus=self._event_bus)
        self._recognizer = recognizer or SpeechRecognizer(config)
        self._conversation = Conversation(config.conversation.history_limit)

        self._state = PipelineState(
            facing=Facing(config.capture.default_facing),
            focus_mode=FocusMode(config.analysis.focus_mode),
            voice=VoiceOption(config.analysis.voice),
            audio_enabled=config.audio.playback_enabled,
        )
        self._handle: CaptureHandle | None = None
        self._switching = False
        self._autonomous_task: asyncio.Task | None = None
        self._scan_tasks: set[asyncio.Task] = set()
        self.logger = get_logger("orchestrator")

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    @property
    def autonomous(self) -> bool:
        return self._autonomous_task is not None and not self._autonomous_task.done()

    async def __aenter__(self) -> PipelineOrchestrator:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    # Lifecycle

    async def start(self) -> None:
        """Acquire the camera. A device failure leaves the pipeline IDLE with ``device_error`` set."""
        self.logger.info("pipeline_starting", facing=self._state.facing.value)
        try:
            self._handle = await self._capture.acquire(self._state.facing)
        except DeviceError as e:
            self.logger.error("camera_unavailable", error=str(e))
            await self._transition(message=e.status_message, error=e.kind, device_error=str(e))
        else:
            await self._transition(message=READY_MESSAGE, device_error=None)

        interval = self.config.pipeline.autonomous_interval_seconds
        if interval:
            self.start_autonomous(interval)

    async def stop(self) -> None:
        """Stop timers and recognition, let an in-flight cycle finish, release the camera."""
        await self.stop_autonomous()
        await self._recognizer.stop()
        pending = self._scan_tasks - {asyncio.current_task()}
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self._player.stop()
        if self._handle is not None:
            await self._capture.release(self._handle)
            self._handle = None
        self.logger.info("pipeline_stopped", cycles=self._state.cycle)

    # Triggers

    def _accepting(self, trigger: str) -> bool:
        if self._state.busy or self._switching:
            self.logger.info(
                f"{trigger}_dropped",
                status=self._state.status.value,
                switching=self._switching,
            )
            return False
        return True

    async def scan(self, command: str = "") -> bool:
        """Run one analysis cycle.

        Args:
            command: User command; empty for an autonomous sweep.

        Returns:
            False if the trigger was dropped because the pipeline was busy.
        """
        if not self._accepting("scan"):
            return False
        task = self._track_trigger()
        try:
            await self._run_cycle(command)
        finally:
            self._scan_tasks.discard(task)
        return True

    async def listen(self) -> bool:
        """Push-to-talk: listen for a command, then scan with it."""
        if not self._accepting("listen"):
            return False
        task = self._track_trigger()
        try:
            await self._listen_and_scan()
        finally:
            self._scan_tasks.discard(task)
        return True

    def _track_trigger(self) -> asyncio.Task | None:
        # stop() waits on every task running a trigger
        task = asyncio.current_task()
        if task is not None:
            self._scan_tasks.add(task)
        return task

    async def _listen_and_scan(self) -> None:
        await self._transition(
            status=PipelineStatus.LISTENING,
            message=LISTENING_MESSAGE,
            error=None,
        )
        try:
            outcome = await self._recognizer.listen()
        except PrismError as e:
            self.logger.warning("listen_failed", kind=e.kind, error=str(e))
            await self._transition(status=PipelineStatus.IDLE, message=e.status_message, error=e.kind)
            return
        except BaseException:
            await self._transition(status=PipelineStatus.IDLE, message=READY_MESSAGE)
            raise

        if outcome.transcript is None:
            self.logger.info("no_voice_command", error=outcome.error)
            await self._transition(
                status=PipelineStatus.IDLE,
                message=NO_TRANSCRIPT_MESSAGE,
                error="RecognitionError" if outcome.error else None,
            )
            return

        self.logger.info("voice_command", command=outcome.transcript)
        await self._run_cycle(outcome.transcript)

    async def stop_listening(self) -> None:
        """End the active listening session without a command."""
        await self._recognizer.stop()

    async def toggle_facing(self) -> bool:
        """Switch between front and back cameras. Only allowed while IDLE."""
        if not self._accepting("toggle_facing"):
            return False

        facing = self._state.facing.flipped()
        self._switching = True
        try:
            await self._transition(message=SWITCHING_MESSAGE)
            self._handle = await self._capture.switch_facing(facing)
        except DeviceError as e:
            self._handle = None
            self.logger.error("camera_switch_failed", facing=facing.value, error=str(e))
            await self._transition(
                facing=facing,
                message=e.status_message,
                error=e.kind,
                device_error=str(e),
            )
        else:
            await self._transition(facing=facing, message=READY_MESSAGE, error=None, device_error=None)
        finally:
            self._switching = False
        return True

    async def set_focus_mode(self, mode: FocusMode) -> None:
        await self._transition(focus_mode=FocusMode(mode))

    async def set_voice(self, voice: VoiceOption) -> None:
        await self._transition(voice=VoiceOption(voice))

    async def set_audio_enabled(self, enabled: bool) -> None:
        if not enabled:
            await self._player.stop()
        await self._transition(audio_enabled=enabled)

    # Autonomous sweep

    def start_autonomous(self, interval: float) -> None:
        """Issue an empty-command scan every ``interval`` seconds."""
        if interval <= 0:
            raise ValueError("interval must be positive")
        if self.autonomous:
            self._autonomous_task.cancel()
        self._autonomous_task = asyncio.create_task(self._autonomous_loop(interval))
        self.logger.info("autonomous_started", interval=interval)

    async def stop_autonomous(self) -> None:
        if self._autonomous_task is None:
            return
        task, self._autonomous_task = self._autonomous_task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.logger.info("autonomous_stopped")

    async def _autonomous_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            # Cycles run outside the timer so stopping it never interrupts one
            task = asyncio.create_task(self.scan(""))
            self._scan_tasks.add(task)
            task.add_done_callback(self._scan_tasks.discard)

    # Cycle

    async def _run_cycle(self, command: str) -> None:
        cycle = self._state.cycle + 1
        start_time = time.time()
        await self._transition(
            status=PipelineStatus.CAPTURING,
            message=CAPTURING_MESSAGE,
            command=command,
            rois=(),
            error=None,
            cycle=cycle,
        )
        log = self.logger.bind(cycle=cycle, commanded=bool(command.strip()))

        try:
            frame = await self._capture_frame()

            await self._transition(status=PipelineStatus.AWAITING_RESULT, message=AWAITING_MESSAGE)
            response = await self._client.request(
                frame,
                command,
                self._conversation.snapshot(),
                self._state.focus_mode,
                self._state.voice,
            )

            await self._transition(status=PipelineStatus.RENDERING, message=RENDERING_MESSAGE)
            rois = await asyncio.to_thread(
                generate_crops,
                frame,
                response.data.roi,
                self.config.crops.fraction,
                self.config.crops.thumbnail_size,
                self.config.crops.thumbnail_quality,
            )
            self._conversation.append(command.strip() or SWEEP_TRANSCRIPT_TEXT, response.data.verbal)
            await self._transition(
                result=response.data,
                rois=tuple(rois),
                transcript_length=len(self._conversation),
                message=response.data.verbal,
            )

            if self._state.audio_enabled and response.audio_base64:
                await self._speak(response.audio_base64)

        except DeviceError as e:
            self._handle = None
            await self._fail(cycle, e, device_error=str(e))
            return
        except PrismError as e:
            await self._fail(cycle, e)
            return
        except Exception as e:
            log.exception("cycle_crashed", error=str(e))
            await self._fail(cycle, e)
            return

        latency_ms = int((time.time() - start_time) * 1000)
        await self._transition(status=PipelineStatus.IDLE)
        log.info(
            "cycle_completed",
            roi_count=len(response.data.roi),
            analysis_latency_ms=response.latency_ms,
            latency_ms=latency_ms,
        )
        await self._event_bus.publish(
            Event(
                topic="pipeline.cycle_completed",
                data={
                    "cycle": cycle,
                    "command": command,
                    "roi_count": len(response.data.roi),
                    "ambient_score": response.data.ambient_score,
                    "latency_ms": latency_ms,
                },
                source="orchestrator",
            )
        )

    async def _capture_frame(self) -> Frame:
        if self._handle is None or not self._handle.live:
            self._handle = await self._capture.acquire(self._state.facing)
            if self._state.device_error:
                await self._transition(device_error=None)
        return await self._capture.snapshot(self._handle)

    async def _speak(self, audio_base64: str) -> None:
        try:
            await self._player.play_base64(audio_base64)
        except AudioDecodeError as e:
            self.logger.warning("audio_decode_failed", error=str(e))
        except Exception as e:
            self.logger.warning("playback_failed", error=str(e))

    async def _fail(self, cycle: int, error: Exception, device_error: str | None = None) -> None:
        is_prism_error = isinstance(error, PrismError)
        kind = error.kind if is_prism_error else type(error).__name__
        message = error.status_message if is_prism_error else FAULT_MESSAGE

        if is_prism_error:
            self.logger.warning("cycle_failed", cycle=cycle, kind=kind, error=str(error))

        changes: dict[str, Any] = {"status": PipelineStatus.IDLE, "message": message, "error": kind}
        if device_error is not None:
            changes["device_error"] = device_error
        await self._transition(**changes)
        await self._event_bus.publish(
            Event(
                topic="pipeline.cycle_failed",
                data={"cycle": cycle, "error": kind, "message": message},
                source="orchestrator",
            )
        )

    async def _transition(self, **changes: Any) -> None:
        # State is replaced before the first await so guards see it immediately
        self._state = replace(self._state, **changes)
        await self._event_bus.publish(
            Event(topic="pipeline.state", data=self._state.to_dict(), source="orchestrator")
        )
