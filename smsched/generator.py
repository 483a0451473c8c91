import random

from .models import Instance


def generate_instance(
    n: int,
    seed: int = 0,
    max_duration: int = 10,
    release_spread: float = 0.5,
    due_slack: float = 0.5,
) -> Instance:
    """Generate a random integral instance with ``r + d <= u`` for every job.

    Releases are drawn from ``[0, release_spread * total_duration]`` and due
    times from ``r + d + [0, due_slack * total_duration]``. Job ids are
    ``J0 .. J{n-1}``.
    """
    if n < 1:
        raise ValueError("n must be >= 1")
    rng = random.Random(seed)
    durations = [rng.randint(1, max_duration) for _ in range(n)]
    total = sum(durations)
    records = []
    for i, d in enumerate(durations):
        r = rng.randint(0, int(release_spread * total))
        u = r + d + rng.randint(0, int(due_slack * total))
        records.append((f"J{i}", r, d, u))
    return Instance.from_records(records)
