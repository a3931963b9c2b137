def validate_email(email):
    return "@" in email and "." in email.rsplit("@", 1)[-1]


def format_name(name):
    return " ".join(part.capitalize() for part in name.split())


def calculate_total(prices, tax_rate=0.0):
    return round(sum(prices) * (1 + tax_rate), 2)
