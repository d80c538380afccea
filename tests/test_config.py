# =============================================================================
# Unit Tests — Settings and Celery wiring
# =============================================================================

from chunkwise.config import Settings, settings
from chunkwise.workers.celery_app import celery_app


class TestSettings:
    """Tests for the pydantic-settings configuration."""

    def test_environment_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("VECTORSTORE_TYPE", "memory")
        monkeypatch.setenv("SEARCH_MAX_LIMIT", "25")

        overridden = Settings()

        assert overridden.vectorstore_type == "memory"
        assert overridden.search_max_limit == 25

    def test_redis_is_reached_only_through_celery_urls(self):
        redis_fields = {name for name in Settings.model_fields if "redis" in name}
        assert redis_fields == set()
        assert Settings().celery_broker_url.startswith("redis://")


class TestCeleryApp:
    """The worker reads its broker and result backend from settings."""

    def test_broker_and_backend_come_from_settings(self):
        assert celery_app.conf.broker_url == settings.celery_broker_url
        assert celery_app.conf.result_backend == settings.celery_result_backend

    def test_task_module_is_included(self):
        assert "chunkwise.workers.tasks" in celery_app.conf.include
