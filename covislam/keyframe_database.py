"""Inverted index over visual words used for loop detection and relocalization."""

from __future__ import annotations

import threading
from typing import Any, Iterable

# Keyframes must share more than this fraction of the best word count to be scored.
_COMMON_WORDS_RATIO = 0.8
# Candidates are kept when their accumulated score exceeds this fraction of the best.
_RETAIN_RATIO = 0.75
# Number of covisible neighbours whose scores are accumulated.
_NEIGHBOURS = 10


def _retain(accumulated: Iterable[tuple[float, Any]], best_score: float) -> list[Any]:
    """Keyframes whose accumulated score beats the retention threshold, without repeats."""
    threshold = _RETAIN_RATIO * best_score
    seen: set[int] = set()
    result: list[Any] = []
    for score, kf in accumulated:
        if score > threshold and id(kf) not in seen:
            seen.add(id(kf))
            result.append(kf)
    return result


class KeyFrameDatabase:
    """Maps each vocabulary word to the keyframes whose bag of words contains it.

    The vocabulary must support ``len()`` (the number of words) and
    ``score(bow_a, bow_b)`` returning a similarity.
    """

    def __init__(self, vocabulary: Any) -> None:
        self._vocabulary = vocabulary
        self._lock = threading.Lock()
        self._inverted_file: list[list[Any]] = [[] for _ in range(len(vocabulary))]

    def _entries(self, word: int) -> list[Any]:
        if not 0 <= word < len(self._inverted_file):
            raise IndexError(f"word {word} is not in the vocabulary")
        return self._inverted_file[word]

    def add(self, kf: Any) -> None:
        """Index a keyframe under every word of its bag of words."""
        with self._lock:
            for word in sorted(kf.bow_vec):
                self._entries(word).append(kf)

    def erase(self, kf: Any) -> None:
        """Remove one entry of the keyframe from the list of each of its words."""
        with self._lock:
            for word in sorted(kf.bow_vec):
                entries = self._entries(word)
                for pos, other in enumerate(entries):
                    if other is kf:
                        del entries[pos]
                        break

    def clear(self) -> None:
        with self._lock:
            self._inverted_file = [[] for _ in range(len(self._vocabulary))]

    def detect_loop_candidates(self, kf: Any, min_score: float) -> list[Any]:
        """Keyframes not connected to kf that look similar enough to close a loop."""
        connected = kf.get_connected_keyframes()
        sharing: list[Any] = []

        with self._lock:
            for word in sorted(kf.bow_vec):
                for kfi in self._entries(word):
                    if kfi.loop_query != kf.id:
                        kfi.loop_words = 0
                        if kfi not in connected:
                            kfi.loop_query = kf.id
                            sharing.append(kfi)
                    kfi.loop_words += 1

        if not sharing:
            return []

        max_common = max(kfi.loop_words for kfi in sharing)
        min_common = int(max_common * _COMMON_WORDS_RATIO)

        scored: list[tuple[float, Any]] = []
        for kfi in sharing:
            if kfi.loop_words > min_common:
                score = self._vocabulary.score(kf.bow_vec, kfi.bow_vec)
                kfi.loop_score = score
                if score >= min_score:
                    scored.append((score, kfi))

        if not scored:
            return []

        accumulated: list[tuple[float, Any]] = []
        best_acc = min_score
        for score, kfi in scored:
            best_score = score
            acc_score = score
            best_kf = kfi
            for neighbour in kfi.get_best_covisibility_keyframes(_NEIGHBOURS):
                if neighbour.loop_query == kf.id and neighbour.loop_words > min_common:
                    acc_score += neighbour.loop_score
                    if neighbour.loop_score > best_score:
                        best_kf = neighbour
                        best_score = neighbour.loop_score
            accumulated.append((acc_score, best_kf))
            best_acc = max(best_acc, acc_score)

        return _retain(accumulated, best_acc)

    def detect_relocalization_candidates(self, frame: Any) -> list[Any]:
        """Keyframes similar to the frame, to try relocalizing against."""
        sharing: list[Any] = []

        with self._lock:
            for word in sorted(frame.bow_vec):
                for kfi in self._entries(word):
                    if kfi.reloc_query != frame.id:
                        kfi.reloc_words = 0
                        kfi.reloc_query = frame.id
                        sharing.append(kfi)
                    kfi.reloc_words += 1

        if not sharing:
            return []

        max_common = max(kfi.reloc_words for kfi in sharing)
        min_common = int(max_common * _COMMON_WORDS_RATIO)

        scored: list[tuple[float, Any]] = []
        for kfi in sharing:
            if kfi.reloc_words > min_common:
                score = self._vocabulary.score(frame.bow_vec, kfi.bow_vec)
                kfi.reloc_score = score
                scored.append((score, kfi))

        if not scored:
            return []

        accumulated: list[tuple[float, Any]] = []
        best_acc = 0.0
        for score, kfi in scored:
            best_score = score
            acc_score = score
            best_kf = kfi
            for neighbour in kfi.get_best_covisibility_keyframes(_NEIGHBOURS):
                if neighbour.reloc_query != frame.id:
                    continue
                acc_score += neighbour.reloc_score
                if neighbour.reloc_score > best_score:
                    best_kf = neighbour
                    best_score = neighbour.reloc_score
            accumulated.append((acc_score, best_kf))
            best_acc = max(best_acc, acc_score)

        return _retain(accumulated, best_acc)