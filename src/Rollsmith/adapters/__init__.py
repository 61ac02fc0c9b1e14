"""In-process collaborator adapters.

Host applications supply their own renderer, dialogs and resource handling;
these defaults keep the pipeline usable from the CLI and in tests.
"""

from .inprocess import (
    ActorResourceConsumer,
    AllowAllConsumer,
    FixedSlotDialog,
    NullDicePresenter,
    PlainTextRenderer,
    RecordingTemplatePlacer,
)

__all__ = [
    "ActorResourceConsumer",
    "AllowAllConsumer",
    "FixedSlotDialog",
    "NullDicePresenter",
    "PlainTextRenderer",
    "RecordingTemplatePlacer",
]
