"""Progress reporting for bundle writing."""

from tqdm import tqdm


class ProgressReporter:
    """Wraps tqdm for item-level progress while a bundle is written."""

    def __init__(self, total_items: int, desc: str = "Scrittura bundle"):
        self._bar = tqdm(
            total=total_items,
            desc=desc,
            unit="file",
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} file [{elapsed}<{remaining}]",
        )

    def update(self, current: int, total: int, label: str) -> None:
        """Advance the bar to ``current`` out of ``total``."""
        if self._bar.total != total:
            self._bar.total = total
        self._bar.set_postfix_str(label, refresh=False)
        self._bar.update(current - self._bar.n)

    def close(self) -> None:
        self._bar.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
