import random
from typing import Sequence

from .exceptions import InvalidSegmentSet
from .segments import Segment


class WheelOutcomeGenerator:
    """Picks the winning slice before a spin starts.

    The generator never re-rolls: callers commit the returned index once and
    hand it to the animation layer. Pass ``seed`` (or a ``random.Random``) to
    get a reproducible sequence of outcomes.
    """

    def __init__(self, seed: int | None = None, *, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random(seed)

    def resolve(self, segments: Sequence[Segment]) -> int:
        if not segments:
            raise InvalidSegmentSet("Cannot spin a wheel without segments")
        return self.rng.randrange(len(segments))

    def choice(self, items: Sequence):
        return self.rng.choice(items)
