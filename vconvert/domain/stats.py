from pydantic import BaseModel


class AnalysisStats(BaseModel):
    """Counters collected while bucketing analysis results."""
    to_rename: int = 0
    to_remux: int = 0
    to_convert: int = 0
    skipped_converted: int = 0
    skipped_bitrate_low: int = 0
    skipped_bitrate_high: int = 0
    skipped_duration_short: int = 0
    skipped_duration_long: int = 0
    skipped_duplicate: int = 0
    analysis_failed: int = 0
    duplicates_removed: int = 0
    duplicate_mismatches: int = 0

    @property
    def total_skipped(self) -> int:
        return (
            self.skipped_converted
            + self.skipped_bitrate_low
            + self.skipped_bitrate_high
            + self.skipped_duration_short
            + self.skipped_duration_long
            + self.skipped_duplicate
        )


class ConversionStats(BaseModel):
    original_size: int
    original_bitrate_kbps: int
    converted_size: int
    converted_bitrate_kbps: int

    @property
    def size_difference(self) -> int:
        return self.converted_size - self.original_size

    @property
    def change_percentage(self) -> float:
        if self.original_size == 0 or self.converted_size == 0:
            return 0.0
        return self.size_difference / self.original_size * 100.0

    def __str__(self) -> str:
        from vconvert.ui.formatting import format_size
        return (
            f"{format_size(self.original_size)} @ {self.original_bitrate_kbps / 1000:.2f} Mbps -> "
            f"{format_size(self.converted_size)} @ {self.converted_bitrate_kbps / 1000:.2f} Mbps "
            f"({self.change_percentage:.1f}%)"
        )


class RunStats(BaseModel):
    """Aggregate outcome of one run."""
    files_renamed: int = 0
    files_remuxed: int = 0
    files_converted: int = 0
    files_failed: int = 0
    total_original_size: int = 0
    total_converted_size: int = 0
    total_seconds: float = 0.0

    def add_result(self, result) -> None:
        from vconvert.domain.results import Converted, Remuxed, Failed

        self.total_seconds += result.elapsed
        if isinstance(result, Converted):
            self.files_converted += 1
            self.total_original_size += result.stats.original_size
            self.total_converted_size += result.stats.converted_size
        elif isinstance(result, Remuxed):
            self.files_remuxed += 1
        elif isinstance(result, Failed):
            self.files_failed += 1
        else:
            raise TypeError(f"Unhandled process result: {result!r}")

    @property
    def space_saved(self) -> int:
        """Negative when the converted files grew."""
        return self.total_original_size - self.total_converted_size
