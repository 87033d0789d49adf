PER_PARTICIPANT = 'per_participant'
TOTAL_COST = 'total_cost'
PRICING_MODES = (PER_PARTICIPANT, TOTAL_COST)


def per_participant_cost(payment_amount, pricing_mode, max_players, actual_players=None):
    """Cost in cents owed by one participant.

    In total_cost mode the amount is split across the actual player count
    when known, otherwise across max_players.
    """
    if payment_amount is None:
        return None
    if pricing_mode == PER_PARTICIPANT:
        return payment_amount
    player_count = actual_players or max_players
    return int(round(payment_amount / player_count))


def total_cost(payment_amount, pricing_mode, player_count):
    if payment_amount is None:
        return None
    if pricing_mode == TOTAL_COST:
        return payment_amount
    return payment_amount * player_count
