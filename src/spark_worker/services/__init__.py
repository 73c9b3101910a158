"""Services module for the Spark worker."""

from spark_worker.services.generation import (
    DRY_RUN_PROVIDER,
    PlaceholderGenerator,
    UnavailableProviderGenerator,
)
from spark_worker.services.interfaces import IBlobPublisher, IGenerator, INotifier
from spark_worker.services.notifier import DeliveryNotifier
from spark_worker.services.publisher import (
    LocalDirectoryPublisher,
    SupabaseStoragePublisher,
)
from spark_worker.services.renderer import FFmpegRenderer, run_supervised

__all__ = [
    "DRY_RUN_PROVIDER",
    "DeliveryNotifier",
    "FFmpegRenderer",
    "IBlobPublisher",
    "IGenerator",
    "INotifier",
    "LocalDirectoryPublisher",
    "PlaceholderGenerator",
    "SupabaseStoragePublisher",
    "UnavailableProviderGenerator",
    "run_supervised",
]
