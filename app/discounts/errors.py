"""Exceptions raised by the discount engine."""


class DiscountError(Exception):
    """Base exception for all discount engine errors."""
    def __init__(self, message="Discount calculation failed", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class InvalidInput(DiscountError):
    """Cart is empty or a line is unusable. Raised before any rule runs."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class MalformedRuleConfig(DiscountError):
    """
    A rule config contradicts itself (percentage over 100, min above max...).
    The evaluators catch this per rule and skip the rule.
    """
    def __init__(self, rule_name, errors):
        self.rule_name = rule_name
        self.errors = list(errors)
        message = f"Rule '{rule_name}' is malformed: {'; '.join(self.errors)}"
        super().__init__(message, 422, {'rule': rule_name, 'errors': self.errors})
