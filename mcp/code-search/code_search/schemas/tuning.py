"""Environment-aware performance tuning.

Per-provider batch embedding knobs and snapshot persistence intervals.
Profiles are selected by the CODE_SEARCH_ENV environment variable
(development, production, test; default production).
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Annotated, Literal

from pydantic import Field

from code_search.schemas.base import StrictModel

__all__ = [
    'DEFAULT_PROVIDER_TUNING',
    'FALLBACK_PROVIDER_TUNING',
    'Environment',
    'ProviderName',
    'ProviderTuning',
    'SnapshotTuning',
    'TuningProfile',
    'current_environment',
    'load_tuning',
    'tuning_for_environment',
]

logger = logging.getLogger(__name__)

type Environment = Literal['development', 'production', 'test']
type ProviderName = Literal['ibthink', 'openai', 'voyageai', 'gemini', 'ollama']


class ProviderTuning(StrictModel):
    """Batch embedding knobs for one provider.

    concurrent_requests chunk requests run at once; each request carries
    chunk_size texts; batch_delay_ms separates consecutive windows.
    """

    concurrent_requests: Annotated[int, Field(ge=1)]
    chunk_size: Annotated[int, Field(ge=1)]
    batch_delay_ms: Annotated[int, Field(ge=0)]


class SnapshotTuning(StrictModel):
    """Snapshot persistence intervals in milliseconds."""

    save_interval_ms: int = 15_000
    throttle_ms: int = 1_000
    progress_save_interval_ms: int = 2_000


DEFAULT_PROVIDER_TUNING: Mapping[ProviderName, ProviderTuning] = {
    'ibthink': ProviderTuning(concurrent_requests=3, chunk_size=50, batch_delay_ms=100),
    'openai': ProviderTuning(concurrent_requests=5, chunk_size=100, batch_delay_ms=200),
    'voyageai': ProviderTuning(concurrent_requests=4, chunk_size=75, batch_delay_ms=150),
    'gemini': ProviderTuning(concurrent_requests=2, chunk_size=25, batch_delay_ms=300),
    'ollama': ProviderTuning(concurrent_requests=1, chunk_size=10, batch_delay_ms=0),
}

# Used for providers without an explicit entry
FALLBACK_PROVIDER_TUNING = ProviderTuning(concurrent_requests=2, chunk_size=50, batch_delay_ms=200)


class TuningProfile(StrictModel):
    """Resolved tuning for one environment."""

    environment: Environment
    providers: Mapping[ProviderName, ProviderTuning]
    snapshot: SnapshotTuning
    debug_logging: bool = False

    def for_provider(self, provider: str) -> ProviderTuning:
        """Tuning for a provider identifier, case-insensitive, with fallback."""
        tuning = self.providers.get(provider.lower())  # type: ignore[call-overload]
        if tuning is None:
            logger.debug(f'[TUNING] No tuning for provider {provider!r}, using fallback')
            return FALLBACK_PROVIDER_TUNING
        return tuning


def tuning_for_environment(environment: Environment) -> TuningProfile:
    """Build the tuning profile for an environment from the production defaults."""
    providers = dict(DEFAULT_PROVIDER_TUNING)
    snapshot = SnapshotTuning()
    debug_logging = False

    match environment:
        case 'development':
            providers['ibthink'] = providers['ibthink'].model_copy(update={'concurrent_requests': 2})
            providers['openai'] = providers['openai'].model_copy(update={'concurrent_requests': 3})
            debug_logging = True
        case 'test':
            providers['ibthink'] = providers['ibthink'].model_copy(update={'concurrent_requests': 1})
            providers['openai'] = providers['openai'].model_copy(update={'concurrent_requests': 1})
            snapshot = snapshot.model_copy(update={'save_interval_ms': 5_000})
        case 'production':
            pass

    return TuningProfile(
        environment=environment,
        providers=providers,
        snapshot=snapshot,
        debug_logging=debug_logging,
    )


def current_environment(environ: Mapping[str, str] | None = None) -> Environment:
    """Read CODE_SEARCH_ENV, defaulting to production for unknown values."""
    env = os.environ if environ is None else environ
    value = env.get('CODE_SEARCH_ENV', 'production').strip().lower()
    if value == 'development':
        return 'development'
    if value == 'test':
        return 'test'
    if value != 'production':
        logger.warning(f'[TUNING] Unknown CODE_SEARCH_ENV={value!r}, using production')
    return 'production'


def load_tuning(environ: Mapping[str, str] | None = None) -> TuningProfile:
    """Tuning profile for the current environment."""
    return tuning_for_environment(current_environment(environ))
