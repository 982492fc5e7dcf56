"""CardSearch Worker Tasks."""

# Import all tasks to register them with Celery
from cardsearch_worker.tasks import index  # noqa: F401
