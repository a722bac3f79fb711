"""
Observation masking

Keeps bulky tool outputs out of the prompt without losing them. Follows a
hybrid backward-scanned FIFO:

1. Protect the newest `protection_threshold` tool tokens (optionally skipping
   the whole latest turn).
2. Everything older than the protection window is prunable.
3. Only act when the prunable total reaches `hysteresis_threshold`, so the
   pass does not flap around the boundary.

Each pruned observation is written to the session's observations directory
and its payload replaced by a guidance block with a bounded preview and the
path to the full content.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Mapping, Optional

from contextAgent.persistence.offload import OffloadedFile, safe_filename_component
from contextAgent.telemetry.events import ObservationMaskingEvent
from contextAgent.tools.names import GREP_TOOL_NAME, READ_FILE_TOOL_NAME
from contextAgent.utils.error_handler import OffloadError

from .history import FunctionResponsePart, History, serialize_observation
from .tokens import estimate_part_tokens

if TYPE_CHECKING:
    from contextAgent.runtime.session import ContextSession

logger = logging.getLogger(__name__)

MASKED_GUIDANCE_MARKER = "<observation_masked_guidance"


@dataclass
class MaskingResult:
    new_history: History
    masked_count: int
    tokens_saved: int


@dataclass(frozen=True)
class MaskedRecord:
    """A prunable observation found during one pass."""
    turn_index: int
    part_index: int
    token_count: int
    serialized_content: str
    source_part: FunctionResponsePart


def is_already_masked(content: str) -> bool:
    return MASKED_GUIDANCE_MARKER in content


class ObservationMaskingService:
    """Offload old tool observations and replace them with previews"""

    async def mask(self, history: History, session: "ContextSession") -> MaskingResult:
        """
        Run one masking pass over the full history.

        Args:
            history: Current conversation history (not modified)
            session: Session providing settings, estimator, storage and telemetry

        Returns:
            MaskingResult; `new_history is history` when nothing was masked
        """
        settings = session.settings.masking
        if not history or not settings.enabled:
            return MaskingResult(new_history=history, masked_count=0, tokens_saved=0)

        prunable = self._find_prunable(history, session)
        total_prunable_tokens = sum(r.token_count for r in prunable)

        # Hysteresis trigger
        if not prunable or total_prunable_tokens < settings.hysteresis_threshold:
            logger.debug(
                f"Observation masking skipped: {total_prunable_tokens:,} prunable tokens "
                f"(< {settings.hysteresis_threshold:,})"
            )
            return MaskingResult(new_history=history, masked_count=0, tokens_saved=0)

        logger.info(
            f"Triggering observation masking. Prunable tool tokens: {total_prunable_tokens:,} "
            f"(>= {settings.hysteresis_threshold:,})"
        )

        offloaded = await self._offload_all(prunable, session)

        # Aggregate only after every write of the pass has settled
        turns = list(history)
        tokens_saved = 0
        for record, outcome in zip(prunable, offloaded):
            part = record.source_part
            preview = self._build_preview(part, record.serialized_content, session)

            if isinstance(outcome, OffloadedFile):
                snippet = self._format_masked_snippet(part.name, outcome, record.token_count, preview)
            else:
                snippet = self._format_unsaved_snippet(part.name, record.token_count, preview)

            new_part = FunctionResponsePart(
                name=part.name,
                call_id=part.call_id,
                response={"output": snippet},
            )
            turns[record.turn_index] = turns[record.turn_index].replace_part(record.part_index, new_part)
            tokens_saved += record.token_count - estimate_part_tokens(new_part, session.estimator)

        logger.info(f"Masked {len(prunable)} tool outputs. Saved ~{tokens_saved:,} tokens.")

        result = MaskingResult(
            new_history=tuple(turns),
            masked_count=len(prunable),
            tokens_saved=tokens_saved,
        )

        if tokens_saved <= 0:
            return result

        session.telemetry.record(
            ObservationMaskingEvent(
                tokens_before=total_prunable_tokens,
                tokens_after=total_prunable_tokens - tokens_saved,
                masked_count=len(prunable),
                total_prunable_tokens=total_prunable_tokens,
            ),
            session_id=session.session_id,
        )
        return result

    def _find_prunable(self, history: History, session: "ContextSession") -> List[MaskedRecord]:
        """Backward scan: everything past the protection window is prunable."""
        settings = session.settings.masking
        scan_start = len(history) - 2 if settings.protect_latest_turn else len(history) - 1

        cumulative_tokens = 0
        boundary_reached = False
        prunable: List[MaskedRecord] = []

        for i in range(scan_start, -1, -1):
            parts = history[i].parts
            for j in range(len(parts) - 1, -1, -1):
                part = parts[j]
                if not isinstance(part, FunctionResponsePart):
                    continue

                content = serialize_observation(part)
                if not content or is_already_masked(content):
                    continue

                tokens = estimate_part_tokens(part, session.estimator)

                if not boundary_reached:
                    cumulative_tokens += tokens
                    if cumulative_tokens <= settings.protection_threshold:
                        continue
                    # The part that crossed the boundary is prunable too
                    boundary_reached = True

                prunable.append(MaskedRecord(
                    turn_index=i,
                    part_index=j,
                    token_count=tokens,
                    serialized_content=content,
                    source_part=part,
                ))

        return prunable

    async def _offload_all(self, prunable: List[MaskedRecord], session: "ContextSession") -> List[Any]:
        """Write every prunable observation; failures come back as exceptions."""
        directory = session.storage.observations_dir
        try:
            await session.offload_store.ensure_dir(directory)
        except OSError as e:
            # Writes below will fail individually and fall back to inline previews
            logger.warning(f"Could not create observations directory {directory}: {e}")

        writes = []
        for record in prunable:
            part = record.source_part
            tool_name = safe_filename_component(part.name or "unknown_tool")
            call_id = safe_filename_component(part.call_id or session.new_id())
            file_name = f"{tool_name}_{call_id}_{session.new_id()}.txt"
            writes.append(session.offload_store.write(directory, file_name, record.serialized_content))

        results = await asyncio.gather(*writes, return_exceptions=True)

        for record, outcome in zip(prunable, results):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, OffloadError):
                logger.warning(
                    f"Offload failed for {record.source_part.name} "
                    f"(call {record.source_part.call_id}), keeping inline preview only: {outcome}"
                )
            elif isinstance(outcome, BaseException):
                logger.error(
                    f"Unexpected offload failure for {record.source_part.name}: {outcome!r}",
                    exc_info=outcome,
                )
        return list(results)

    def _build_preview(self, part: FunctionResponsePart, content: str, session: "ContextSession") -> str:
        settings = session.settings.masking
        if part.name in settings.shell_tool_names and isinstance(part.response, Mapping):
            return self._format_shell_preview(part.response, settings.shell_preview_lines)

        head, tail = settings.preview_head_chars, settings.preview_tail_chars
        if len(content) > head + tail:
            tail_text = content[-tail:] if tail else ""
            return f"{content[:head]}\n... [TRUNCATED] ...\n{tail_text}"
        return content

    def _format_shell_preview(self, response: Mapping[str, Any], max_lines: int) -> str:
        output = response.get("output") or response.get("stdout") or ""
        text = output if isinstance(output, str) else json.dumps(output, ensure_ascii=False, default=str)
        preview = "\n".join(text.split("\n")[:max_lines])

        exit_code = response.get("exitCode", response.get("exit_code"))
        error = response.get("error")

        if exit_code is not None and exit_code != 0:
            preview += f"\n[Exit Code: {exit_code}]"
        if error:
            preview += f"\n[Error: {error}]"
        return preview

    def _format_masked_snippet(
        self,
        tool_name: str,
        offloaded: OffloadedFile,
        tokens: int,
        preview: str,
    ) -> str:
        return f"""[Observation Masked]
<observation_masked_guidance tool_name="{tool_name}">
  <preview>{preview}</preview>
  <details>
    <file_path>{offloaded.path}</file_path>
    <file_size>{offloaded.size_mb}MB</file_size>
    <line_count>{offloaded.line_count:,}</line_count>
    <estimated_total_tokens>{tokens:,}</estimated_total_tokens>
  </details>
  <instructions>
    The full output is available at the path above.
    You can inspect it using tools like '{GREP_TOOL_NAME}' or '{READ_FILE_TOOL_NAME}'.
    Note: Reading the full file will use approximately {tokens:,} tokens.
  </instructions>
</observation_masked_guidance>"""

    def _format_unsaved_snippet(self, tool_name: str, tokens: int, preview: str) -> str:
        return f"""[Observation Masked]
<observation_masked_guidance tool_name="{tool_name}">
  <preview>{preview}</preview>
  <details>
    <estimated_total_tokens>{tokens:,}</estimated_total_tokens>
  </details>
  <instructions>
    The full output could not be saved and is no longer available.
    Re-run the tool if you need more than the preview above.
  </instructions>
</observation_masked_guidance>"""
