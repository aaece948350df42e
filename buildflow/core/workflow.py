from .exceptions import InvalidStatusTransition


def check_transition(transitions, current, new, label='status'):
    """Raise InvalidStatusTransition unless ``current -> new`` is listed in ``transitions``"""
    if current == new:
        return
    allowed = transitions.get(current, ())
    if new not in allowed:
        raise InvalidStatusTransition(
            f'Cannot change {label} from {current} to {new}.',
            details={'from': current, 'to': new, 'allowed': sorted(allowed)},
        )
