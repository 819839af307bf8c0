from __future__ import annotations

import random


DEFAULT_PROMPTS = [
    "banana",
    "a haunted toaster",
    "grandma on a skateboard",
    "the last slice of pizza",
    "a cat filing taxes",
    "volcano birthday party",
    "a shy lighthouse",
    "snowman at the beach",
    "robot learning to dance",
    "a very tired wizard",
    "penguin job interview",
    "traffic jam in space",
    "a cactus hug",
    "dinosaur at the dentist",
    "a cloud with a secret",
    "haircut gone wrong",
    "the world's smallest horse",
    "a knight afraid of the dark",
    "spaghetti tornado",
    "a ghost doing laundry",
    "underwater library",
    "moon eating cheese",
    "a suspicious sandwich",
    "octopus conductor",
]


def pick_prompts(prompts: list[str], count: int, rng: random.Random | None = None) -> list[str]:
    unique = list(dict.fromkeys(p.strip() for p in prompts if p and p.strip()))
    if count <= 0 or not unique:
        return []
    r = rng or random
    return r.sample(unique, min(count, len(unique)))
