"""Phase runners for an extraction run.

Each phase is encapsulated in its own runner class with:
- Clear inputs and outputs
- Error handling
- Logging
"""

from cosmic_extractor.phases.phase_base import (
    PhaseRunner,
    PhaseContext,
    RunResources,
    RunConfig,
    RoundState,
)
from cosmic_extractor.phases.understanding_phase import UnderstandingPhase
from cosmic_extractor.phases.splitting_phase import SplittingPhase
from cosmic_extractor.phases.batch_split_phase import (
    BatchSplitter,
    find_missed,
    is_covered,
    keyword_tokens,
)

__all__ = [
    "PhaseRunner",
    "PhaseContext",
    "RunResources",
    "RunConfig",
    "RoundState",
    "UnderstandingPhase",
    "SplittingPhase",
    "BatchSplitter",
    "find_missed",
    "is_covered",
    "keyword_tokens",
]
