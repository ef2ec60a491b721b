import random
from enum import Enum
from typing import List, Sequence


class Challenge(str, Enum):
    """
    An enumeration of liveness challenges.
    The value is the wire identifier reported to observers and in Step records.
    """
    PREPARE = "prepare"
    BLINK = "blink"
    TURN_LEFT = "turn-left"
    TURN_RIGHT = "turn-right"
    SMILE = "smile"


DEFAULT_CHALLENGES = (Challenge.BLINK, Challenge.TURN_LEFT, Challenge.TURN_RIGHT)


class ChallengeGenerator:
    """
    Produces the challenge sequence for a run.
    """

    def __init__(self, challenges: Sequence[Challenge] = None, shuffle: bool = False):
        """
        Args:
            challenges: The scored challenges to run. Defaults to blink, turn-left, turn-right.
            shuffle: Randomize the order on every call, so a pre-recorded video
                     cannot anticipate the sequence.
        """
        challenges = list(challenges) if challenges else list(DEFAULT_CHALLENGES)
        if Challenge.PREPARE in challenges:
            raise ValueError("prepare is a gate and cannot be part of the scored challenges.")
        self.challenges = challenges
        self.shuffle = shuffle

    def generate(self) -> List[Challenge]:
        """
        Returns:
            A new list of challenges, in the order they must be performed.
        """
        if not self.shuffle:
            return list(self.challenges)
        return random.sample(self.challenges, len(self.challenges))
