from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BACKEND_DIR = Path(__file__).resolve().parents[1]


def _csv_env(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _thresholds_env(name: str, default: str) -> tuple[int, ...]:
    values: list[int] = []
    for part in _csv_env(name, default):
        try:
            values.append(int(part))
        except ValueError:
            continue
    values = sorted(set(value for value in values if value > 0))
    if not values:
        values = [int(part) for part in default.split(",")]
    return tuple(values)


class Settings:
    def __init__(self) -> None:
        self.database_url = os.getenv("DATABASE_URL", "").strip()
        self.redis_url = os.getenv("REDIS_URL", "").strip()
        self.ws_port = int(os.getenv("WS_PORT", "8080"))

        self.questions_path = Path(
            os.getenv("QUESTIONS_PATH", str(BACKEND_DIR / "data" / "questions.json"))
        )
        self.show_texts_path = Path(
            os.getenv("SHOW_TEXTS_PATH", str(BACKEND_DIR / "data" / "show_texts.json"))
        )

        # Lifecycle timings
        self.question_timer_ms = max(1, int(os.getenv("QUESTION_TIMER_MS", "7000")))
        self.grace_period_ms = max(0, int(os.getenv("GRACE_PERIOD_MS", "1000")))
        self.answer_display_ms = max(0, int(os.getenv("ANSWER_DISPLAY_MS", "3000")))
        self.ready_pause_ms = max(0, int(os.getenv("READY_PAUSE_MS", "4000")))
        self.pool_restart_delay_ms = max(0, int(os.getenv("POOL_RESTART_DELAY_MS", "3000")))
        self.match_restart_delay_ms = max(0, int(os.getenv("MATCH_RESTART_DELAY_MS", "10000")))
        self.winner_announcement_gap_ms = max(
            0,
            int(os.getenv("WINNER_ANNOUNCEMENT_GAP_MS", "1000")),
        )

        # Policies
        self.question_order = os.getenv("QUESTION_ORDER", "sequential").strip().lower()
        if self.question_order not in {"sequential", "shuffled"}:
            self.question_order = "sequential"
        self.match_restart_mode = os.getenv("MATCH_RESTART_MODE", "timer").strip().lower()
        if self.match_restart_mode not in {"timer", "reconnect"}:
            self.match_restart_mode = "timer"
        self.score_grace_answers = _bool_env("SCORE_GRACE_ANSWERS", True)
        self.answer_announcement_enabled = _bool_env("ANSWER_ANNOUNCEMENT_ENABLED", True)
        self.encouragement_position = os.getenv("ENCOURAGEMENT_POSITION", "after-reveal").strip().lower()
        if self.encouragement_position not in {"before-reveal", "after-reveal", "off"}:
            self.encouragement_position = "after-reveal"
        self.answer_letters = "".join(
            dict.fromkeys(ch for ch in os.getenv("ANSWER_LETTERS", "ABCD").upper() if ch.isalpha())
        ) or "ABCD"

        # Players
        self.level_thresholds = _thresholds_env("LEVEL_THRESHOLDS", "1,4,10,15,21")
        self.player_inactivity_ms = max(1000, int(os.getenv("PLAYER_INACTIVITY_MS", "300000")))
        self.inactivity_sweep_interval_ms = max(
            100,
            int(os.getenv("INACTIVITY_SWEEP_INTERVAL_MS", "30000")),
        )
        self.gift_priority_window_ms = max(0, int(os.getenv("GIFT_PRIORITY_WINDOW_MS", "30000")))

        # Narration
        self.azure_speech_key = os.getenv("AZURE_SPEECH_KEY", "").strip()
        self.azure_speech_region = os.getenv("AZURE_SPEECH_REGION", "eastus").strip()
        self.tts_voice = os.getenv("TTS_VOICE", "fr-FR-RemyMultilingualNeural").strip()
        self.tts_language = os.getenv("TTS_LANGUAGE", "fr-FR").strip()
        self.tts_cache_dir = Path(os.getenv("TTS_CACHE_DIR", str(BACKEND_DIR / "tts_audio" / "cache")))
        self.tts_timeout_seconds = max(2, int(os.getenv("TTS_TIMEOUT_SECONDS", "20")))
        self.audio_player_command = os.getenv(
            "AUDIO_PLAYER_COMMAND",
            "ffplay -nodisp -autoexit -loglevel quiet",
        ).strip()

        # Background images
        self.unsplash_api_url = os.getenv(
            "UNSPLASH_API_URL",
            "https://api.unsplash.com/photos/random",
        ).strip()
        self.unsplash_access_keys = tuple(dict.fromkeys(_csv_env("UNSPLASH_ACCESS_KEYS", "")))
        self.unsplash_rate_limit_per_hour = max(1, int(os.getenv("UNSPLASH_RATE_LIMIT_PER_HOUR", "50")))
        self.image_timeout_seconds = max(2, int(os.getenv("IMAGE_TIMEOUT_SECONDS", "10")))
        self.image_cache_ttl_seconds = max(60, int(os.getenv("IMAGE_CACHE_TTL_SECONDS", "604800")))
        self.image_cache_max_entries = max(10, int(os.getenv("IMAGE_CACHE_MAX_ENTRIES", "1000")))
        self.fallback_image_url = os.getenv(
            "FALLBACK_IMAGE_URL",
            "https://httpbin.org/image/png?width=800&height=600",
        ).strip()


settings = Settings()
