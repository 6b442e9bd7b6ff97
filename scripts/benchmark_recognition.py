"""Benchmark script to compute recognition distances for threshold and margin tuning."""

import sys
from pathlib import Path
import numpy as np

# Add parent directory to path to import face_attendance modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from face_attendance.config import DISTANCE_THRESHOLD, SECOND_BEST_MARGIN
from face_attendance.db import load_encodings
from face_attendance.recognizer import is_accepted, match_descriptor
from face_attendance.utils import l2_distance


def print_stats(title, distances):
    print(title)
    print(f"  Mean:   {np.mean(distances):.4f}")
    print(f"  Std:    {np.std(distances):.4f}")
    print(f"  Median: {np.median(distances):.4f}")
    print(f"  Min:    {np.min(distances):.4f}")
    print(f"  Max:    {np.max(distances):.4f}")
    print(f"  Count:  {len(distances)}")


def leave_one_out(user_encodings, threshold, margin):
    """
    Match every stored sample against the table without that sample.

    Returns:
        (correct, rejected, wrong) counts
    """
    correct = rejected = wrong = 0
    for username, embeddings in user_encodings.items():
        for i, sample in enumerate(embeddings):
            others = dict(user_encodings)
            others[username] = embeddings[:i] + embeddings[i + 1:]
            match = match_descriptor(sample, others)
            if not is_accepted(match, threshold, margin):
                rejected += 1
            elif match.best_name == username:
                correct += 1
            else:
                wrong += 1
    return correct, rejected, wrong


def main():
    """Compute intra-class and inter-class distances."""
    print("=== Recognition Distance Benchmark ===")
    print("Computing intra-class (same person) and inter-class (different person) distances\n")

    user_encodings = {name: list(embs) for name, embs in load_encodings().items() if len(embs) > 0}

    if len(user_encodings) < 2:
        print("Need at least 2 users with encodings for meaningful statistics.")
        return

    # Compute intra-class distances (same person)
    intra_distances = []
    for username, embeddings in user_encodings.items():
        for i in range(len(embeddings)):
            for j in range(i + 1, len(embeddings)):
                intra_distances.append(l2_distance(embeddings[i], embeddings[j]))

    # Compute inter-class distances (different people)
    inter_distances = []
    usernames = list(user_encodings.keys())
    for i in range(len(usernames)):
        for j in range(i + 1, len(usernames)):
            for emb1 in user_encodings[usernames[i]]:
                for emb2 in user_encodings[usernames[j]]:
                    inter_distances.append(l2_distance(emb1, emb2))

    if len(intra_distances) > 0:
        print_stats("Intra-class distances (same person):", intra_distances)

    if len(inter_distances) > 0:
        print_stats("\nInter-class distances (different people):", inter_distances)

    # Threshold recommendation
    if len(intra_distances) > 0 and len(inter_distances) > 0:
        best_threshold = None
        best_separation = 0

        for threshold in np.arange(0.2, 1.0, 0.05):
            # False reject rate (intra-class above threshold)
            frr = sum(1 for d in intra_distances if d > threshold) / len(intra_distances)
            # False accept rate (inter-class below threshold)
            far = sum(1 for d in inter_distances if d <= threshold) / len(inter_distances)

            separation = frr + far
            if best_threshold is None or separation < best_separation:
                best_separation = separation
                best_threshold = threshold

        frr = sum(1 for d in intra_distances if d > best_threshold) / len(intra_distances)
        far = sum(1 for d in inter_distances if d <= best_threshold) / len(inter_distances)
        print(f"\n=== Threshold Recommendation ===")
        print(f"Suggested threshold: {best_threshold:.3f}  (minimizes FRR + FAR)")
        print(f"  False Reject Rate (FRR): {frr*100:.2f}%")
        print(f"  False Accept Rate (FAR): {far*100:.2f}%")

    # Leave-one-out with the configured acceptance rule
    correct, rejected, wrong = leave_one_out(user_encodings, DISTANCE_THRESHOLD, SECOND_BEST_MARGIN)
    total = correct + rejected + wrong
    print(f"\n=== Leave-one-out at threshold {DISTANCE_THRESHOLD}, margin {SECOND_BEST_MARGIN} ===")
    print(f"  Correct:  {correct}/{total}")
    print(f"  Unknown:  {rejected}/{total}")
    print(f"  Wrong:    {wrong}/{total}")


if __name__ == "__main__":
    main()
