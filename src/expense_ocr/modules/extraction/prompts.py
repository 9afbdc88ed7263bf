from __future__ import annotations

ODOMETER = "odometer"
TRAVEL = "travel"
GENERAL = "general"

PROMPTS: dict[str, str] = {
    ODOMETER: (
        "This is an image of a car's odometer. Extract ONLY the numerical reading displayed. "
        "Ignore any other text or symbols (like 'km', 'miles', 'trip'). "
        "Return ONLY a valid JSON object with a single key 'reading' containing the number "
        'as a string (e.g., {"reading": "123456.7"}).'
    ),
    TRAVEL: (
        "You are an AI specialized in extracting data from travel expense receipts "
        "(image or PDF). Extract the following REQUIRED fields: Transaction Date (date as "
        "string 'YYYY-MM-DD' if possible, otherwise original format), Cost/Amount (cost as a "
        "number), Currency Code (currency as a 3-letter string like 'USD', 'EUR', 'CAD'), a "
        "concise Description/Purpose (description as string), Expense Type (type as string, "
        "e.g., Food, Transportation), Vendor Name (vendor as string), and Location (location "
        "as string). Return ONLY a valid JSON object containing ALL these fields: date, cost, "
        "currency, description, type, vendor, location. Example: "
        '{"date": "2024-03-15", "cost": 45.50, "currency": "USD", "description": '
        '"Taxi from airport to hotel", "type": "Transportation", "vendor": "City Cabs", '
        '"location": "New York, NY"}'
    ),
    GENERAL: (
        "You are an AI specialized in reading and extracting data from general receipts "
        "(image or PDF). Analyze to identify: date, vendor/business name (vendor), location, "
        "individual items purchased with prices (items array with name and price), subtotal, "
        "tax, total amount (total), and payment method (paymentMethod). Return ONLY a "
        "structured JSON object with these fields."
    ),
}

TEMPLATES: tuple[str, ...] = tuple(PROMPTS)


def get_prompt(template: str) -> str | None:
    return PROMPTS.get(template)
