class DirectionClock:
    """
    Assigns release times for one direction of one connection.

    A release time is never earlier than the one handed out before it, so a
    segment that drew a short delay waits behind a previously queued segment
    that drew a long one instead of overtaking it.
    """

    def __init__(self, opened_at: float):
        self.last_assigned = opened_at
        self.widened = 0

    def assign(self, now: float, sampled_delay: float) -> float:
        candidate = now + sampled_delay
        if candidate < self.last_assigned:
            self.widened += 1
            release = self.last_assigned
        else:
            release = candidate
        self.last_assigned = release
        return release
