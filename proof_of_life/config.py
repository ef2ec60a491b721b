"""
Configuration for the proof-of-life engine and its HTTP API.

Every value can be overridden with an environment variable of the same name.
"""

import os
from typing import Any, Dict, List

from .exceptions import ConfigurationError
from .models.challenges import Challenge


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(',') if item.strip()]


class Config:
    """Main configuration class for the liveness engine"""

    # =============================================================================
    # SEQUENCE TIMING (seconds)
    # =============================================================================

    PREPARE_TIMEOUT_SECONDS = float(os.getenv('PREPARE_TIMEOUT_SECONDS', '5.0'))
    PREPARE_POLL_INTERVAL_SECONDS = float(os.getenv('PREPARE_POLL_INTERVAL_SECONDS', '0.2'))
    CHALLENGE_TIMEOUT_SECONDS = float(os.getenv('CHALLENGE_TIMEOUT_SECONDS', '5.0'))
    RETRY_INTERVAL_SECONDS = float(os.getenv('RETRY_INTERVAL_SECONDS', '0.3'))
    BLINK_SAMPLE_INTERVAL_SECONDS = float(os.getenv('BLINK_SAMPLE_INTERVAL_SECONDS', '0.14'))
    MOVEMENT_SAMPLE_INTERVAL_SECONDS = float(os.getenv('MOVEMENT_SAMPLE_INTERVAL_SECONDS', '0.7'))

    # =============================================================================
    # DETECTION THRESHOLDS
    # =============================================================================

    CONTRAST_RATIO = float(os.getenv('CONTRAST_RATIO', '1.15'))  # central vs. edge luminance variance
    PIXEL_NOISE_FLOOR = float(os.getenv('PIXEL_NOISE_FLOOR', '18'))  # of 255
    BLINK_CHANGE_RATIO = float(os.getenv('BLINK_CHANGE_RATIO', '0.06'))
    BLINK_BOX_DELTA_PX = float(os.getenv('BLINK_BOX_DELTA_PX', '6'))
    SMILE_CHANGE_RATIO = float(os.getenv('SMILE_CHANGE_RATIO', '0.06'))
    MOVEMENT_THRESHOLD_PX = float(os.getenv('MOVEMENT_THRESHOLD_PX', '10'))

    # MediaPipe Face Detection (platform detector)
    MEDIAPIPE_MODEL_SELECTION = int(os.getenv('MEDIAPIPE_MODEL_SELECTION', '0'))  # 0=close-range, 1=full-range
    MEDIAPIPE_MIN_DETECTION_CONFIDENCE = float(os.getenv('MEDIAPIPE_MIN_DETECTION_CONFIDENCE', '0.5'))

    # =============================================================================
    # CHALLENGE SET
    # =============================================================================

    CHALLENGES = _env_list('CHALLENGES', 'blink,turn-left,turn-right')
    REQUIRE_PREPARE = os.getenv('REQUIRE_PREPARE', 'true').lower() == 'true'
    BLINK_STRATEGY = os.getenv('BLINK_STRATEGY', 'eye_band')  # eye_band | box_delta
    RANDOMIZE_CHALLENGES = os.getenv('RANDOMIZE_CHALLENGES', 'false').lower() == 'true'

    DEFAULT_LOCALE = os.getenv('DEFAULT_LOCALE', 'pt-BR')

    # =============================================================================
    # VIDEO UPLOADS
    # =============================================================================

    MAX_VIDEO_DURATION_SECONDS = float(os.getenv('MAX_VIDEO_DURATION_SECONDS', '30'))
    MAX_ANALYZED_FRAMES = int(os.getenv('MAX_ANALYZED_FRAMES', '900'))  # hard ceiling per request

    # =============================================================================
    # LOGGING
    # =============================================================================

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FORMAT = os.getenv('LOG_FORMAT', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    def get_mediapipe_face_detection_config(self) -> Dict[str, Any]:
        """Get MediaPipe face detection configuration"""
        return {
            'model_selection': self.MEDIAPIPE_MODEL_SELECTION,
            'min_detection_confidence': self.MEDIAPIPE_MIN_DETECTION_CONFIDENCE
        }

    def validate_configuration(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigurationError: on the first invalid value found
        """
        for name in ('PREPARE_TIMEOUT_SECONDS', 'PREPARE_POLL_INTERVAL_SECONDS',
                     'CHALLENGE_TIMEOUT_SECONDS', 'BLINK_SAMPLE_INTERVAL_SECONDS',
                     'MOVEMENT_SAMPLE_INTERVAL_SECONDS', 'MAX_VIDEO_DURATION_SECONDS'):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(name, value, "must be positive")

        if self.RETRY_INTERVAL_SECONDS < 0:
            raise ConfigurationError('RETRY_INTERVAL_SECONDS', self.RETRY_INTERVAL_SECONDS, "must not be negative")

        for name in ('BLINK_CHANGE_RATIO', 'SMILE_CHANGE_RATIO'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(name, value, "must be between 0 and 1")

        if self.BLINK_STRATEGY not in ('eye_band', 'box_delta'):
            raise ConfigurationError('BLINK_STRATEGY', self.BLINK_STRATEGY, "must be 'eye_band' or 'box_delta'")

        if not self.CHALLENGES:
            raise ConfigurationError('CHALLENGES', self.CHALLENGES, "at least one challenge is required")

        for name in self.CHALLENGES:
            try:
                challenge = Challenge(name)
            except ValueError:
                raise ConfigurationError('CHALLENGES', name, "unknown challenge")
            if challenge is Challenge.PREPARE:
                raise ConfigurationError('CHALLENGES', name, "prepare is a gate, use REQUIRE_PREPARE")


# Development/Testing Configuration
class DevelopmentConfig(Config):
    """Configuration for development environment"""
    LOG_LEVEL = 'DEBUG'


# Production Configuration
class ProductionConfig(Config):
    """Configuration for production environment"""
    LOG_LEVEL = 'WARNING'
    RANDOMIZE_CHALLENGES = True


def get_config(environment: str = None) -> Config:
    """Get configuration based on environment"""
    env = environment or os.getenv('ENVIRONMENT', 'default')

    if env.lower() == 'production':
        return ProductionConfig()
    elif env.lower() == 'development':
        return DevelopmentConfig()
    else:
        return Config()
