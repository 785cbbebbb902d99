DEFAULT_MASTERY_RULES = {
    "min_repetitions": 5,
    "difficult_ease_factor": 2.0,
}

def mastery_status_from_rules(repetitions: int, rules: dict = None) -> str:
    rules = rules or DEFAULT_MASTERY_RULES
    if repetitions <= 0:
        return "new"
    if repetitions >= rules["min_repetitions"]:
        return "mastered"
    return "learning"

def is_difficult(repetitions: int, easiness_factor: float, rules: dict = None) -> bool:
    rules = rules or DEFAULT_MASTERY_RULES
    return easiness_factor < rules["difficult_ease_factor"] or repetitions < 3

def mastery_percent(mastered: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round((mastered / total) * 100, 1)
