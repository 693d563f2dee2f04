from __future__ import annotations

# Words that look like OCR misreads to the consonant-cluster heuristic but are real products.
LEGITIMATE_LONG_WORDS = frozenset(
    {
        "prosciutto",
        "prosciuttone",
        "stracciatella",
        "mozzarella",
        "cappuccino",
        "macchiato",
        "bruschetta",
        "gnocchi",
        "pappardelle",
        "tagliatelle",
    }
)

CULINARY_TERMS = frozenset(
    {
        "aioli",
        "arborio",
        "arancini",
        "balsamic",
        "barramundi",
        "bocconcini",
        "brioche",
        "burrata",
        "calamari",
        "capsicum",
        "chorizo",
        "ciabatta",
        "coriander",
        "courgette",
        "crème",
        "edamame",
        "espresso",
        "focaccia",
        "gochujang",
        "gorgonzola",
        "gruyere",
        "haloumi",
        "halloumi",
        "jalapeno",
        "kombucha",
        "labneh",
        "linguine",
        "mascarpone",
        "miso",
        "nduja",
        "orecchiette",
        "panko",
        "pancetta",
        "parmigiano",
        "pecorino",
        "pesto",
        "pistachio",
        "polenta",
        "porcini",
        "ricotta",
        "risotto",
        "rocket",
        "saganaki",
        "shiitake",
        "sriracha",
        "tahini",
        "taleggio",
        "tzatziki",
        "wagyu",
        "zucchini",
    }
    | LEGITIMATE_LONG_WORDS
)

UNIT_ABBREVIATIONS = frozenset(
    {
        "ctn",
        "ctns",
        "each",
        "gram",
        "grams",
        "kilo",
        "kilos",
        "kilogram",
        "kilograms",
        "litre",
        "litres",
        "liter",
        "liters",
        "millilitre",
        "millilitres",
        "punnet",
        "punnets",
        "bunch",
        "bunches",
        "carton",
        "cartons",
        "dozen",
        "packet",
        "packets",
        "tray",
        "trays",
        "bottle",
        "bottles",
    }
)
