"""Splitting phase - the bounded multi-round loop.

Each round sends the document plus what has been produced so far, parses
the reply, and merges new groups into RoundState. Rounds are strictly
sequential: every prompt depends on everything merged before it.

Termination checks after each round, in order:
    a. unique process count >= target
    b. quantity mode only: completion marker outside the table, no table
       after round 1, or a reply shorter than SHORT_REPLY_CHARS after round 1
    c. no-progress rounds reach the mode's stall limit (or the hard limit)
    d. the round number reaches max_rounds
In quality mode the signals of (b) only count once the target is met,
which (a) already covers, so the model cannot talk the loop into stopping
early.
"""

from collections.abc import AsyncIterator

from cosmic_extractor.agents.splitter_agent import SplitReply, request_split
from cosmic_extractor.core.config import RoundConfig
from cosmic_extractor.core.errors import (
    ConfigurationError,
    ErrorKind,
    ExhaustedAllModelsError,
    malformed_output_issue,
    provider_issue,
)
from cosmic_extractor.phases.phase_base import PhaseRunner
from cosmic_extractor.pydantic_models.output import (
    ExtractionMode,
    RoundReport,
    RunState,
    TerminationReason,
)
from cosmic_extractor.prompts.splitting_prompt import (
    build_first_round_prompt,
    build_followup_round_prompt,
)
from cosmic_extractor.prompts.understanding_prompt import render_understanding_context


def prose_text(reply: str) -> str:
    """Reply text with table rows removed.

    Process names such as "查询已完成工单" must not read as a completion marker.
    """
    return "\n".join(line for line in reply.splitlines() if "|" not in line)


class SplittingPhase(PhaseRunner[TerminationReason]):
    """Round loop over one document (or one chunk of it)."""

    name = "Splitting"

    def __init__(self, context, document: str):
        super().__init__(context)
        self.document = document

    def build_prompt(self, round_number: int) -> str:
        ctx = self.context
        understanding_context = render_understanding_context(ctx.understanding)
        if round_number == 1:
            return build_first_round_prompt(
                self.document,
                target=ctx.target,
                guidelines=ctx.config.guidelines,
                understanding_context=understanding_context,
            )
        return build_followup_round_prompt(
            self.document,
            completed_names=ctx.state.process_names,
            used_descriptions=ctx.state.dedup.sub_process_descriptions,
            target=ctx.target,
            understanding_context=understanding_context,
        )

    def check_termination(self, reply: SplitReply, round_number: int) -> TerminationReason | None:
        """First termination condition that holds after ``round_number``."""
        config = self.context.config
        state = self.context.state

        if state.unique_count >= config.target:
            return TerminationReason.TARGET_REACHED

        prose = prose_text(reply.text)
        has_marker = any(marker in prose for marker in config.completion_markers)
        if config.mode == ExtractionMode.QUANTITY:
            if has_marker:
                return TerminationReason.COMPLETION_MARKER
            if round_number > 1 and not reply.table_found:
                return TerminationReason.NO_TABLE
            if round_number > 1 and len(reply.text.strip()) < RoundConfig.SHORT_REPLY_CHARS:
                return TerminationReason.SHORT_REPLY
        elif has_marker:
            self.log(
                f"Completion marker ignored below target ({state.unique_count}/{config.target})",
                level="debug",
            )

        if state.no_progress_rounds >= min(config.stall_limit, config.hard_stall_limit):
            return TerminationReason.STALLED
        if round_number >= config.max_rounds:
            return TerminationReason.MAX_ROUNDS
        return None

    async def rounds(self) -> AsyncIterator[RoundReport]:
        """Run rounds until a termination condition holds, one report each.

        The last report carries the termination reason. Provider exhaustion
        ends the loop with a PROVIDER_EXHAUSTED report and the error is
        recorded in the run issues.

        Raises:
            ConfigurationError: The provider rejected the credentials before
                any round completed.
        """
        ctx = self.context
        config = ctx.config
        state = ctx.state
        state.run_state = RunState.SPLITTING
        self.start(config.max_rounds, model=ctx.client.provider.model)

        while True:
            if state.round_number > 0:
                await ctx.cancel.sleep(config.round_delay)
            ctx.cancel.raise_if_cancelled()
            state.round_number += 1
            round_number = state.round_number

            try:
                reply = await request_split(
                    ctx.client,
                    self.build_prompt(round_number),
                    stage="round",
                    fill_missing_movements=config.fill_missing_movements,
                    temperature=config.temperature,
                    cancel=ctx.cancel,
                )
            except ExhaustedAllModelsError as e:
                if e.classification == ErrorKind.AUTH and round_number == 1:
                    self.log(f"Credentials rejected on the first call: {e}", level="error")
                    raise ConfigurationError(
                        f"Provider {ctx.client.provider.provider_kind.value} rejected the credentials: {e.remediation}"
                    ) from e
                ctx.issues.add(provider_issue(e, stage="round", round_number=round_number))
                state.termination = TerminationReason.PROVIDER_EXHAUSTED
                state.failure = e.to_dict()
                self.log(f"Round {round_number} failed on every model: {e}", level="error")
                self.end("failed", rounds=round_number, processes=state.unique_count)
                yield RoundReport(
                    round_number=round_number,
                    unique_process_count=state.unique_count,
                    no_progress_rounds=state.no_progress_rounds,
                    termination=TerminationReason.PROVIDER_EXHAUSTED,
                )
                return

            added = state.dedup.merge(reply.records)
            if added:
                state.no_progress_rounds = 0
            else:
                state.no_progress_rounds += 1

            if not reply.table_found and not any(m in reply.text for m in config.completion_markers):
                ctx.issues.add(malformed_output_issue(
                    "Round reply contained no table",
                    stage="round",
                    round_number=round_number,
                    raw_text=reply.text,
                ))

            new_names = [r.functional_process for r in added if r.functional_process]
            termination = self.check_termination(reply, round_number)
            self.logger.round_result(
                round_number,
                len(added),
                state.unique_count,
                config.target,
                model=reply.completion.model,
                fallback=reply.completion.used_fallback,
                stalled=state.no_progress_rounds,
            )

            report = RoundReport(
                round_number=round_number,
                new_records=added,
                new_process_names=new_names,
                unique_process_count=state.unique_count,
                no_progress_rounds=state.no_progress_rounds,
                model=reply.completion.model,
                used_fallback=reply.completion.used_fallback,
                table_found=reply.table_found,
                termination=termination,
            )

            if termination is not None:
                state.termination = termination
                self.logger.milestone(
                    f"Stopping after round {round_number}: {termination.value}",
                    processes=state.unique_count,
                    target=config.target,
                )
                self.end(termination.value, rounds=round_number, processes=state.unique_count)
                yield report
                return

            yield report

    async def run(self) -> TerminationReason:
        async for report in self.rounds():
            if report.termination is not None:
                return report.termination
        return self.context.state.termination or TerminationReason.MAX_ROUNDS
