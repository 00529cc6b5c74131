"""
Multi-pass word reconciliation for Schedule OCR.

Words recognised in several shots of the same page are grouped into
WordClusters (same text within a tolerance, same row), corrected against the
dictionaries and emitted again in reading order.
"""

import logging
import re
from typing import List, Optional

from .dictionaries import DictionaryMatcher, similarity
from .utils import OCRWord, RecognitionResult, WordCluster

logger = logging.getLogger(__name__)

TIME_TOKEN = re.compile(r'^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$')


class WordClusterer:
    """Merges recognition passes into clusters with provenance."""

    def __init__(
        self,
        matcher: Optional[DictionaryMatcher] = None,
        min_confidence: float = 30.0,
        short_word_length: int = 3,
        short_word_similarity: float = 0.9,
        word_similarity: float = 0.8,
        y_tolerance: float = 30.0,
        line_threshold: float = 25.0,
        min_mean_confidence: float = 60.0,
        min_occurrences: Optional[int] = None
    ):
        """
        Args:
            matcher: Dictionary matcher for cluster text correction
            min_confidence: Observations at or below this are ignored
            short_word_length: Words up to this length use the strict similarity
            short_word_similarity: Merge threshold for short words
            word_similarity: Merge threshold for longer words
            y_tolerance: Max vertical distance (px) for merging longer words
            line_threshold: Rows closer than this (px) are read as one line
            min_mean_confidence: Clusters need a higher mean confidence to survive
            min_occurrences: Observations a cluster needs to survive
                (default: 2 when several passes were merged, else 1)
        """
        self.matcher = matcher or DictionaryMatcher()
        self.min_confidence = min_confidence
        self.short_word_length = short_word_length
        self.short_word_similarity = short_word_similarity
        self.word_similarity = word_similarity
        self.y_tolerance = y_tolerance
        self.line_threshold = line_threshold
        self.min_mean_confidence = min_mean_confidence
        self.min_occurrences = min_occurrences

        self.clusters: List[WordCluster] = []
        self.passes = 0

    def reset(self) -> None:
        self.clusters = []
        self.passes = 0

    # -------------------------------------------------------------------------
    # Accumulation
    # -------------------------------------------------------------------------

    def add_pass(self, result: RecognitionResult) -> None:
        """Fold one recognition pass into the shared cluster state."""
        self.passes += 1
        kept = 0

        for word in result.words:
            if not self._is_usable(word):
                continue
            kept += 1
            self._assign(word)

        logger.debug("Pass %d: %d usable words, %d clusters", self.passes, kept, len(self.clusters))

    def _is_usable(self, word: OCRWord) -> bool:
        text = word.text.strip()
        if not text or word.confidence <= self.min_confidence:
            return False
        # Single characters only survive when they are digits
        if len(text) == 1 and not text.isdigit():
            return False
        return True

    def _assign(self, word: OCRWord) -> None:
        word = OCRWord(text=word.text.strip(), confidence=word.confidence, bbox=word.bbox)

        best_cluster = None
        best_key = None

        for cluster in self.clusters:
            # A pass contributes at most one observation per cluster
            if self.passes in cluster.pass_ids:
                continue
            score = self._merge_score(word.text, word.bbox.y, cluster)
            if score <= 0:
                continue
            # Equal scores (repeated words on a row) go to the nearest cluster
            key = (score, -abs(word.bbox.x - cluster.mean_x))
            if best_key is None or key > best_key:
                best_cluster = cluster
                best_key = key

        if best_cluster is None:
            self.clusters.append(WordCluster.from_word(word, self.passes))
        else:
            best_cluster.add(word, self.passes)

    def _merge_score(self, text: str, y: float, cluster: WordCluster) -> float:
        """Similarity if the word may join the cluster, else 0."""
        if abs(y - cluster.first_y) >= self.y_tolerance:
            return 0.0

        reference = cluster.canonical_text
        if TIME_TOKEN.match(text) or TIME_TOKEN.match(reference):
            # "10:00" and "10:30" are different appointments
            return 1.0 if text == reference else 0.0

        sim = similarity(text, reference)

        if len(text) <= self.short_word_length or len(reference) <= self.short_word_length:
            return sim if sim > self.short_word_similarity else 0.0
        return sim if sim > self.word_similarity else 0.0

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def final_rows(self) -> List[List[WordCluster]]:
        """Surviving clusters, corrected and grouped into rows in reading order."""
        min_occurrences = self.min_occurrences
        if min_occurrences is None:
            min_occurrences = 2 if self.passes > 1 else 1

        survivors = []
        for cluster in self.clusters:
            if cluster.occurrences < min_occurrences:
                continue
            if cluster.mean_confidence <= self.min_mean_confidence:
                continue
            cluster.corrected_text = self._corrected_text(cluster)
            survivors.append(cluster)

        logger.info(
            "Reconciled %d passes into %d clusters (%d kept)",
            self.passes, len(self.clusters), len(survivors)
        )
        return self._rows(survivors)

    def final_clusters(self) -> List[WordCluster]:
        """Surviving clusters in reading order."""
        return [cluster for row in self.final_rows() for cluster in row]

    def _corrected_text(self, cluster: WordCluster) -> str:
        variant = cluster.most_frequent_variant
        if TIME_TOKEN.match(variant):
            return variant
        return self.matcher.find_best_match(variant)

    def _rows(self, clusters: List[WordCluster]) -> List[List[WordCluster]]:
        """Group by row (within line_threshold), each row left to right."""
        by_y = sorted(clusters, key=lambda c: (c.mean_y, c.mean_x))

        rows: List[List[WordCluster]] = []
        for cluster in by_y:
            if rows and abs(cluster.mean_y - rows[-1][0].mean_y) < self.line_threshold:
                rows[-1].append(cluster)
            else:
                rows.append([cluster])

        return [sorted(row, key=lambda c: c.mean_x) for row in rows]

    def to_text(self) -> str:
        """Reconciled text, one row per line."""
        return "\n".join(
            " ".join(cluster.text for cluster in row)
            for row in self.final_rows()
        )
