from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


NO_FACE_DETECTED = "no_face_detected"
CHALLENGE_FAILED = "challenge_failed"


@dataclass(frozen=True)
class FaceBox:
    """Axis-aligned face rectangle in frame pixel coordinates."""
    x: int
    y: int
    width: int
    height: int

    def fits(self, frame_width: int, frame_height: int) -> bool:
        return (self.width > 0 and self.height > 0 and self.x >= 0 and self.y >= 0
                and self.x + self.width <= frame_width
                and self.y + self.height <= frame_height)


@dataclass(frozen=True)
class SupportedCapabilities:
    face_detector: bool = False


@dataclass(frozen=True)
class Step:
    name: str
    passed: bool
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "passed": self.passed}
        if self.details is not None:
            data["details"] = self.details
        return data


@dataclass(frozen=True)
class LivenessResult:
    """
    Terminal verdict of one run.

    ``alive`` is true iff every configured step passed. ``reason`` is set only
    on failure: ``no_face_detected`` when the prepare gate timed out, otherwise
    ``challenge_failed:<challenge>`` for the first challenge that did not pass.
    """
    alive: bool
    steps: Tuple[Step, ...] = field(default_factory=tuple)
    reason: Optional[str] = None

    @property
    def failed_step(self) -> Optional[Step]:
        for step in self.steps:
            if not step.passed:
                return step
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = {"alive": self.alive}
        if self.reason is not None:
            data["reason"] = self.reason
        data["steps"] = [step.to_dict() for step in self.steps]
        return data


def challenge_failed_reason(challenge: str) -> str:
    return f"{CHALLENGE_FAILED}:{challenge}"
