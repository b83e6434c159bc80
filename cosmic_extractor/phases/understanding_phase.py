"""Understanding phase - optional document read-through before splitting.

Failure is never fatal: a malformed reply or an exhausted provider is
recorded as an issue and splitting starts without the extra context.
"""

from cosmic_extractor.agents.understanding_agent import run_understanding
from cosmic_extractor.core.errors import (
    ExhaustedAllModelsError,
    MalformedOutputError,
    malformed_output_issue,
    provider_issue,
)
from cosmic_extractor.phases.phase_base import PhaseRunner
from cosmic_extractor.pydantic_models.output import RunState
from cosmic_extractor.pydantic_models.understanding_models import DocumentUnderstanding


class UnderstandingPhase(PhaseRunner[DocumentUnderstanding | None]):
    """Single structured call producing a DocumentUnderstanding."""

    name = "Understanding"

    def __init__(self, context, document: str):
        super().__init__(context)
        self.document = document

    async def run(self) -> DocumentUnderstanding | None:
        ctx = self.context
        ctx.state.run_state = RunState.UNDERSTANDING
        self.start(model=ctx.client.provider.model)

        try:
            understanding = await run_understanding(ctx.client, self.document, cancel=ctx.cancel)
        except MalformedOutputError as e:
            ctx.issues.add(malformed_output_issue(str(e), stage="understanding", raw_text=e.raw_text))
            self.log(f"Unusable reply, continuing without understanding: {e}", level="warning")
            self.end("skipped")
            return None
        except ExhaustedAllModelsError as e:
            ctx.issues.add(provider_issue(e, stage="understanding"))
            self.log(f"Provider failed, continuing without understanding: {e}", level="warning")
            self.end("skipped")
            return None

        ctx.understanding = understanding
        self.end(
            understanding.project_name or "understood",
            modules=len(understanding.core_modules),
            estimated=understanding.total_estimated_functions,
        )
        return understanding
