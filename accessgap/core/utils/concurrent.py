"""Concurrent fan-out over independent items."""

import concurrent.futures
from typing import Callable, Dict, Hashable, Iterable, Optional, TypeVar

import structlog

logger = structlog.get_logger(__name__)

K = TypeVar("K", bound=Hashable)
R = TypeVar("R")


class ConcurrentProcessor:
    """Run a function over items on a ThreadPoolExecutor, isolating failures."""

    def __init__(self, max_workers: int = 5):
        """Initialize concurrent processor.

        Args:
            max_workers: Maximum number of worker threads
        """
        self.max_workers = max_workers

    def process(
        self,
        items: Iterable[K],
        process_func: Callable[[K], R],
        error_handler: Optional[Callable[[K, Exception], R]] = None,
    ) -> Dict[K, R]:
        """Process items concurrently.

        Args:
            items: Hashable items to process (duplicates are processed once)
            process_func: Function to process each item
            error_handler: Maps a failed item and its exception to a result;
                without one, failed items are left out of the result

        Returns:
            Mapping of item to result
        """
        items_list = list(dict.fromkeys(items))
        results: Dict[K, R] = {}

        if not items_list:
            return results

        logger.info("concurrent_processing_started", total_items=len(items_list))

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_item = {executor.submit(process_func, item): item for item in items_list}

            for future in concurrent.futures.as_completed(future_to_item):
                item = future_to_item[future]
                try:
                    results[item] = future.result()
                except Exception as e:
                    logger.error(
                        "concurrent_processing_error",
                        item=str(item)[:100],
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    if error_handler:
                        results[item] = error_handler(item, e)

        logger.info(
            "concurrent_processing_completed",
            total_items=len(items_list),
            completed=len(results),
        )
        return results
