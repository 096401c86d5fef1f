import logging
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from pingmux import logger_main
from pingmux.engine.models import Response

logger = logging.getLogger(f"{logger_main}.{__name__.split('.')[-1]}")


class ResultsHandler:
    """
    Collector of ping responses over one or more rounds.

    Responses are kept in a pandas DataFrame with one row per target and
    round. The handler renders tables, aggregates per-target summaries and
    saves the records as JSON lines.
    """

    COLUMNS = ["round", "target", "pkg_loss", "rtt_min", "rtt_mean", "rtt_max", "error"]

    def __init__(self, results_file: Optional[str | Path] = None):
        """
        Initialize the ResultsHandler.

        Args:
            results_file (Optional[str | Path]): JSON lines file used by
                `save_results`. Nothing is written if None.
        """
        self.results_file = (
            Path(results_file).absolute().resolve() if results_file else None
        )
        self.results_df = pd.DataFrame(columns=self.COLUMNS)

    def record_round(self, round_number: int, responses: Iterable[Response]) -> None:
        """
        Record the responses of one round of calls.

        Args:
            round_number (int): The sequential number of the round.
            responses (Iterable[Response]): Responses of that round.
        """
        rows = [{"round": round_number, **response.as_dict} for response in responses]
        if not rows:
            return
        logger.debug(f"Recording round #{round_number}: {len(rows)} responses")
        new_rows = pd.DataFrame(rows, columns=self.COLUMNS)
        if self.results_df.empty:
            self.results_df = new_rows
        else:
            self.results_df = pd.concat([self.results_df, new_rows], ignore_index=True)

    def get_table(self, round_number: Optional[int] = None) -> str:
        """
        Render the recorded responses as a table.

        Args:
            round_number (Optional[int]): Only render this round if given.

        Returns:
            str: The formatted table.
        """
        df = self.results_df
        if round_number is not None:
            df = df[df["round"] == round_number]
        if df.empty:
            return "No results collected."

        table = df.drop(columns=["round"]).copy()
        table["error"] = table["error"].fillna("")
        for col in ("rtt_min", "rtt_mean", "rtt_max"):
            table[col] = table[col].astype(float).round(3)
        return table.to_markdown(index=False, tablefmt="simple")

    def get_summary(self) -> pd.DataFrame:
        """
        Aggregate all rounds per target.

        Round-trip times of rounds with total loss are left out of the
        latency columns since they only repeat the configured timeout, and so are
        rounds that failed to resolve.

        Returns:
            pd.DataFrame: One row per target with rounds, mean loss,
            min/mean/max round-trip time and error count.
        """
        if self.results_df.empty:
            return pd.DataFrame()

        df = self.results_df.copy()
        answered = df["error"].isna() & (df["pkg_loss"].astype(float) < 1.0)
        for col in ("rtt_min", "rtt_mean", "rtt_max"):
            df[col] = df[col].astype(float).where(answered)

        grouped = df.groupby("target", sort=False)
        return pd.DataFrame(
            {
                "rounds": grouped["round"].count(),
                "pkg_loss": grouped["pkg_loss"].mean().astype(float),
                "rtt_min": grouped["rtt_min"].min(),
                "rtt_mean": grouped["rtt_mean"].mean(),
                "rtt_max": grouped["rtt_max"].max(),
                "errors": grouped["error"].count(),
            }
        )

    def all_answered(self) -> bool:
        """True if every recorded target answered in at least one round."""
        df = self.results_df
        if df.empty:
            return False
        answered = df["error"].isna() & (df["pkg_loss"].astype(float) < 1.0)
        return bool(answered.groupby(df["target"]).any().all())

    def save_results(self) -> Optional[Path]:
        """
        Save the recorded responses to the results file.

        Returns:
            Optional[Path]: The file written, None if no file is configured.

        Raises:
            RuntimeError: If saving fails.
        """
        if self.results_file is None:
            return None
        try:
            self.results_file.parent.mkdir(parents=True, exist_ok=True)
            self.results_df.to_json(self.results_file, orient="records", lines=True)
            logger.debug(f"Results saved to {self.results_file}")
            return self.results_file
        except Exception as e:
            raise RuntimeError(f"Error saving results: {str(e)}")
