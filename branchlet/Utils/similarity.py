# branchlet/Utils/similarity.py
# Description: Levenshtein edit distance and a normalised similarity score
#
# Used to rank note titles against a free-text query.


def levenshtein_distance(a: str, b: str) -> int:
    """Return the minimum number of single-character edits turning ``a`` into ``b``."""
    if not a:
        return len(b)
    if not b:
        return len(a)

    # Only the previous row of the DP matrix is needed.
    previous = list(range(len(a) + 1))
    for i, b_char in enumerate(b, start=1):
        current = [i]
        for j, a_char in enumerate(a, start=1):
            if a_char == b_char:
                current.append(previous[j - 1])
            else:
                current.append(min(
                    previous[j - 1] + 1,  # substitution
                    current[j - 1] + 1,   # insertion
                    previous[j] + 1,      # deletion
                ))
        previous = current

    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Similarity in ``[0, 1]``; 1 means identical. Two empty strings are identical."""
    max_length = max(len(a), len(b))
    if max_length == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / max_length
