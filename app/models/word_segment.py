from dataclasses import dataclass


@dataclass(frozen=True)
class WordSegment:
    start: float
    end: float

    @property
    def length(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class WordBounds:
    """Where one word sits in the learner's recording and in the reference recording."""
    word: str
    user: WordSegment
    reference: WordSegment
    estimated: bool
