import pytest

from delta_brief.config import PipelineConfig


@pytest.fixture
def pipeline_config():
    """
    Defaults pinned in code so a developer's shell env (PIPELINE_MAX_RETRIES,
    PIPELINE_DEADLINE_SECONDS, ...) cannot change test outcomes.
    """
    return PipelineConfig(
        max_retries=2,
        base_temperature=0.7,
        retry_temperature_step=0.1,
        max_temperature=1.0,
        deadline_seconds=0,
        require_resolution_with_prior=False,
    )
