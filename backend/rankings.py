from typing import Dict


def rank(players: Dict[str, dict], score_key: str) -> Dict[str, int]:
    """Rank players by ``score_key``, highest first.

    Tied players share a rank and the next distinct score takes its 1-based
    position, e.g. scores [10, 10, 7] rank as [1, 1, 3].
    """
    ordered = sorted(players.items(), key=lambda item: item[1][score_key], reverse=True)
    ranks: Dict[str, int] = {}
    current_rank = 1
    for position, (player_id, player) in enumerate(ordered):
        if position > 0 and player[score_key] != ordered[position - 1][1][score_key]:
            current_rank = position + 1
        ranks[player_id] = current_rank
    return ranks


def apply_rankings(players: Dict[str, dict]):
    """Recompute end-of-round and overall ranks in place."""
    round_ranks = rank(players, "current_round_score")
    overall_ranks = rank(players, "total_score")
    for player_id, player in players.items():
        player["end_of_round_rank"] = round_ranks[player_id]
        player["overall_rank"] = overall_ranks[player_id]
