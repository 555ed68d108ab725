"""Canonical vehicle vocabulary: models, trims, generations, options and colors.

Identifiers are stable slugs. Trims and generations are namespaced by model
(``911:gt3-rs``, ``718-cayman:982``) so membership can be checked from the id.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Tuple

from .rules import Rule, RuleSet, prepare_text


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9.]+", "-", text.lower()).strip("-")


@dataclass(frozen=True)
class VehicleModel:
    id: str
    name: str
    aliases: Tuple[str, ...]


@dataclass(frozen=True)
class Trim:
    model_id: str
    name: str
    aliases: Tuple[str, ...]
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    min_price: Optional[int] = None
    implies_model: bool = False

    @property
    def id(self) -> str:
        return f"{self.model_id}:{slugify(self.name)}"

    def covers(self, year: int) -> bool:
        if self.start_year is not None and year < self.start_year:
            return False
        if self.end_year is not None and year > self.end_year:
            return False
        return True


@dataclass(frozen=True)
class Generation:
    model_id: str
    name: str
    start_year: int
    end_year: Optional[int] = None

    @property
    def id(self) -> str:
        return f"{self.model_id}:{self.name}"

    @property
    def family(self) -> str:
        return self.name.split(".", 1)[0]

    def covers(self, year: int) -> bool:
        return year >= self.start_year and (self.end_year is None or year <= self.end_year)


@dataclass(frozen=True)
class VehicleOption:
    id: str
    name: str
    aliases: Tuple[str, ...]


@dataclass(frozen=True)
class Color:
    name: str
    aliases: Tuple[str, ...] = ()
    paint_to_sample: bool = False

    @property
    def id(self) -> str:
        return slugify(self.name)


MODELS: Tuple[VehicleModel, ...] = (
    VehicleModel("911", "911", ("911", "nine eleven", "porsche 911")),
    # a bare "718" is a Cayman unless the Boxster-only "718 spyder" matches
    VehicleModel("718-cayman", "718 Cayman", ("718 cayman", "cayman", "718")),
    VehicleModel("718-boxster", "718 Boxster", ("718 boxster", "boxster", "718 spyder")),
)

# Models outside the sports-car catalog. They lose only to an explicit catalog
# model alias, never to a model implied by a trim word ("Cayenne Turbo").
EXCLUDED_MODEL_TOKENS: Tuple[str, ...] = ("cayenne", "macan", "panamera", "taycan", "918", "carrera gt")

TRIMS: Tuple[Trim, ...] = (
    Trim("911", "Carrera", ("carrera",), 1984, implies_model=True),
    Trim("911", "Carrera S", ("carrera s", "c2s"), 1997),
    Trim("911", "Carrera 4", ("carrera 4", "c4"), 1989),
    Trim("911", "Carrera 4S", ("carrera 4s", "carrera 4 s", "c4s"), 1996),
    Trim("911", "Carrera T", ("carrera t",), 2018),
    Trim("911", "Carrera GTS", ("carrera gts",), 2011),
    Trim("911", "Carrera 4 GTS", ("carrera 4 gts", "c4 gts"), 2011),
    Trim("911", "Targa 4", ("targa 4",), 2014, implies_model=True),
    Trim("911", "Targa 4S", ("targa 4s", "targa 4 s"), 2014, implies_model=True),
    Trim("911", "Targa 4 GTS", ("targa 4 gts",), 2015, implies_model=True),
    Trim("911", "Turbo", ("turbo",), 1975, implies_model=True),
    Trim("911", "Turbo S", ("turbo s",), 1997, min_price=180000, implies_model=True),
    Trim("911", "GT3", ("gt3",), 1999, min_price=150000, implies_model=True),
    Trim("911", "GT3 RS", ("gt3 rs", "gt3rs"), 2004, min_price=250000, implies_model=True),
    Trim("911", "GT3 Touring", ("gt3 touring",), 2018, min_price=150000, implies_model=True),
    Trim("911", "GT2", ("gt2",), 1995, implies_model=True),
    Trim("911", "GT2 RS", ("gt2 rs", "gt2rs"), 2011, implies_model=True),
    Trim("911", "Sport Classic", ("sport classic",), 2010, implies_model=True),
    Trim("911", "Speedster", ("speedster",), 1989, implies_model=True),
    Trim("911", "R", ("911 r",), 2016, 2016),
    Trim("911", "S/T", ("911 s t",), 2023),
    Trim("911", "Dakar", ("dakar",), 2023, implies_model=True),
    # body style alone, used when no base trim is named
    Trim("911", "Targa", (), 1996),
    Trim("911", "Cabriolet", (), 1995),
    Trim("718-cayman", "Base", ("base",), 2006),
    Trim("718-cayman", "S", ("cayman s",), 2006),
    Trim("718-cayman", "T", ("cayman t",), 2020),
    Trim("718-cayman", "R", ("cayman r",), 2012, 2012),
    Trim("718-cayman", "GTS", ("cayman gts", "gts"), 2015),
    Trim("718-cayman", "GTS 4.0", ("cayman gts 4.0", "gts 4.0"), 2020),
    Trim("718-cayman", "GT4", ("gt4",), 2016, implies_model=True),
    Trim("718-cayman", "GT4 RS", ("gt4 rs", "gt4rs"), 2022, min_price=180000, implies_model=True),
    Trim("718-boxster", "Base", ("base",), 1997),
    Trim("718-boxster", "S", ("boxster s",), 2000),
    Trim("718-boxster", "T", ("boxster t",), 2020),
    Trim("718-boxster", "GTS", ("boxster gts", "gts"), 2015),
    Trim("718-boxster", "GTS 4.0", ("boxster gts 4.0", "gts 4.0"), 2020),
    Trim("718-boxster", "Spyder", ("spyder", "718 spyder", "boxster spyder"), 2011, implies_model=True),
    Trim("718-boxster", "Spyder RS", ("spyder rs",), 2024, min_price=200000, implies_model=True),
)

# Body styles append to the base trim; only models sold in more than one body style list them.
BODY_STYLES: Dict[str, Tuple[str, ...]] = {
    "Cabriolet": ("cabriolet", "cabrio", "convertible"),
    "Targa": ("targa",),
}
BODY_STYLE_MODELS: Tuple[str, ...] = ("911",)

# "2018 Porsche 718 Cayman" with no trim word is the base car
DEFAULT_TRIMS: Dict[str, str] = {
    "718-cayman": "718-cayman:base",
    "718-boxster": "718-boxster:base",
}

GENERATIONS: Tuple[Generation, ...] = (
    Generation("911", "993", 1995, 1998),
    Generation("911", "996", 1999, 2005),
    Generation("911", "997.1", 2005, 2008),
    Generation("911", "997.2", 2009, 2012),
    Generation("911", "991.1", 2012, 2016),
    Generation("911", "991.2", 2017, 2019),
    Generation("911", "992.1", 2020, 2024),
    Generation("911", "992.2", 2025),
    Generation("718-cayman", "987.1", 2006, 2008),
    Generation("718-cayman", "987.2", 2009, 2012),
    Generation("718-cayman", "981", 2013, 2016),
    Generation("718-cayman", "982", 2017),
    Generation("718-boxster", "986", 1997, 2004),
    Generation("718-boxster", "987.1", 2005, 2008),
    Generation("718-boxster", "987.2", 2009, 2012),
    Generation("718-boxster", "981", 2013, 2016),
    Generation("718-boxster", "982", 2017),
)

OPTIONS: Tuple[VehicleOption, ...] = (
    VehicleOption("pccb", "Porsche Ceramic Composite Brakes (PCCB)", ("pccb", "ceramic brakes", "ceramic composite brakes", "carbon ceramic brakes")),
    VehicleOption("sport-chrono", "Sport Chrono Package", ("sport chrono", "chrono package")),
    VehicleOption("pdcc", "Porsche Dynamic Chassis Control (PDCC)", ("pdcc", "dynamic chassis control")),
    VehicleOption("pasm", "Porsche Active Suspension Management (PASM)", ("pasm", "active suspension management")),
    VehicleOption("sport-exhaust", "Sport Exhaust", ("sport exhaust", "sports exhaust", "pse")),
    VehicleOption("front-axle-lift", "Front Axle Lift", ("front axle lift", "front lift", "nose lift", "lift system", "hgas")),
    VehicleOption("full-bucket-seats", "Full Bucket Seats", ("full bucket seats", "bucket seats", "lightweight bucket seats", "carbon bucket seats", "lwbs")),
    VehicleOption("adaptive-sport-seats", "Adaptive Sport Seats Plus", ("adaptive sport seats", "18 way seats", "18 way sport seats")),
    VehicleOption("weissach-package", "Weissach Package", ("weissach package", "weissach")),
    VehicleOption("clubsport-package", "Clubsport Package", ("clubsport package", "clubsport", "club sport")),
    VehicleOption("burmester", "Burmester High-End Surround Sound", ("burmester",)),
    VehicleOption("bose", "Bose Surround Sound", ("bose",)),
    VehicleOption("pdk", "Porsche Doppelkupplung (PDK)", ("pdk", "doppelkupplung")),
    VehicleOption("manual-transmission", "Manual Transmission", ("manual transmission", "6 speed manual", "7 speed manual", "manual", "stick shift")),
    VehicleOption("ptv", "Porsche Torque Vectoring (PTV)", ("ptv", "torque vectoring")),
    VehicleOption("pdls", "LED Matrix Headlights (PDLS+)", ("pdls", "led matrix", "matrix headlights")),
    VehicleOption("rear-axle-steering", "Rear Axle Steering", ("rear axle steering", "rear wheel steering")),
    VehicleOption("carbon-roof", "Carbon Fiber Roof", ("carbon roof", "carbon fiber roof")),
    VehicleOption("paint-protection-film", "Paint Protection Film", ("paint protection film", "ppf", "xpel", "clear bra")),
    VehicleOption("paint-to-sample", "Paint to Sample", ("paint to sample", "pts")),
)

PAINT_TO_SAMPLE_OPTION_ID = "paint-to-sample"

COLORS: Tuple[Color, ...] = (
    Color("Carrara White", ("white", "carrara white", "carrara white metallic", "pure white")),
    Color("Jet Black", ("black", "jet black", "jet black metallic", "grey black finish")),
    Color("GT Silver", ("gt silver", "gt silver metallic")),
    Color("Rhodium Silver", ("silver", "rhodium silver", "rhodium silver metallic")),
    Color("Arctic Silver Metallic", ("arctic silver", "arctic silver metallic")),
    Color("Arctic Gray", ("arctic gray", "arctic grey")),
    Color("Agate Gray", ("agate gray", "agate grey", "agate gray metallic", "agate grey metallic")),
    Color("Chalk", ("chalk", "crayon")),
    Color("Carbon Steel Gray", ("carbon steel gray", "carbon steel grey")),
    Color("Guards Red", ("guards red", "red")),
    Color("Carmine Red", ("carmine red",)),
    Color("Sapphire Blue", ("blue", "sapphire blue", "sapphire blue metallic")),
    Color("Gentian Blue", ("gentian blue", "gentian blue metallic", "gemini blue")),
    Color("Miami Blue", ("miami blue",)),
    Color("Shark Blue", ("shark blue",)),
    Color("Dark Blue Metallic", ("dark blue", "dark blue metallic")),
    Color("Racing Yellow", ("yellow", "racing yellow")),
    Color("Gulf Orange", ("gulf orange",)),
    Color("Lava Orange", ("lava orange",)),
    Color("Pastel Orange", ("pastel orange",)),
    Color("Ultraviolet", ("purple", "ultraviolet")),
    Color("Frozen Berry", ("frozen berry", "frozen berry metallic")),
    Color("Slate Grey", ("slate grey", "slate gray"), paint_to_sample=True),
    Color("Nardo Grey", ("nardo grey", "nardo gray"), paint_to_sample=True),
    Color("Fashion Grey", ("fashion grey", "fashion gray"), paint_to_sample=True),
    Color("Signal Yellow", ("signal yellow",), paint_to_sample=True),
    Color("Signal Green", ("signal green",), paint_to_sample=True),
    Color("Python Green", ("python green",), paint_to_sample=True),
    Color("Acid Green", ("acid green",), paint_to_sample=True),
    Color("Lizard Green", ("lizard green",), paint_to_sample=True),
    Color("Irish Green", ("irish green",), paint_to_sample=True),
    Color("Mint Green", ("mint green",), paint_to_sample=True),
    Color("Oak Green Metallic", ("oak green", "oak green metallic"), paint_to_sample=True),
    Color("Granite Green", ("granite green",), paint_to_sample=True),
    Color("Dark Sea Blue", ("dark sea blue",), paint_to_sample=True),
    Color("Oslo Blue", ("oslo blue",), paint_to_sample=True),
    Color("Mexico Blue", ("mexico blue",), paint_to_sample=True),
    Color("Voodoo Blue", ("voodoo blue",), paint_to_sample=True),
    Color("Riviera Blue", ("riviera blue",), paint_to_sample=True),
    Color("Ruby Star", ("ruby star",), paint_to_sample=True),
)


class Catalog:
    """Lookup tables and compiled rule sets over the static vocabulary."""

    def __init__(
        self,
        models: Iterable[VehicleModel] = MODELS,
        trims: Iterable[Trim] = TRIMS,
        generations: Iterable[Generation] = GENERATIONS,
        options: Iterable[VehicleOption] = OPTIONS,
        colors: Iterable[Color] = COLORS,
    ) -> None:
        self.models: Dict[str, VehicleModel] = {model.id: model for model in models}
        self.trims: Dict[str, Trim] = {trim.id: trim for trim in trims}
        self.generations: Dict[str, Generation] = {gen.id: gen for gen in generations}
        self.options: Dict[str, VehicleOption] = {option.id: option for option in options}
        self.colors: Dict[str, Color] = {color.id: color for color in colors}

        self.model_rules = RuleSet(
            Rule.literal(alias, model.id) for model in self.models.values() for alias in model.aliases
        )
        self.implied_model_rules = RuleSet(
            Rule.literal(alias, trim.model_id)
            for trim in self.trims.values()
            if trim.implies_model
            for alias in trim.aliases
        )
        self.trim_rules: Dict[str, RuleSet] = {
            model_id: RuleSet(
                Rule.literal(alias, trim.id)
                for trim in self.trims.values()
                if trim.model_id == model_id
                for alias in trim.aliases
            )
            for model_id in self.models
        }
        self.body_style_rules = RuleSet(
            Rule.literal(alias, style) for style, aliases in BODY_STYLES.items() for alias in aliases
        )
        self.generation_rules: Dict[str, RuleSet] = {
            model_id: RuleSet(
                rule
                for gen in self.generations.values()
                if gen.model_id == model_id
                for rule in (Rule.literal(gen.name, gen.name), Rule.literal(gen.family, gen.family))
            )
            for model_id in self.models
        }
        self.option_rules = RuleSet(
            Rule.literal(alias, option.id) for option in self.options.values() for alias in option.aliases
        )
        self.excluded_model_rules = RuleSet(Rule.literal(token, token) for token in EXCLUDED_MODEL_TOKENS)
        self._color_aliases: Dict[str, str] = {}
        for color in self.colors.values():
            for alias in (color.name, *color.aliases):
                self._color_aliases[prepare_text(alias)] = color.id

    # -- models / trims -------------------------------------------------

    def model_by_name(self, name: Optional[str]) -> Optional[VehicleModel]:
        text = prepare_text(name)
        if not text:
            return None
        for model in self.models.values():
            if text == prepare_text(model.name) or text in {prepare_text(alias) for alias in model.aliases}:
                return model
        return None

    def trim_for(self, trim_id: Optional[str]) -> Optional[Trim]:
        """Base trim of a possibly body-style-suffixed trim id."""
        if not trim_id:
            return None
        if trim_id in self.trims:
            return self.trims[trim_id]
        for style in BODY_STYLES:
            suffix = f"-{slugify(style)}"
            if trim_id.endswith(suffix) and trim_id[: -len(suffix)] in self.trims:
                return self.trims[trim_id[: -len(suffix)]]
        return None

    def trim_name(self, trim_id: Optional[str]) -> Optional[str]:
        base = self.trim_for(trim_id)
        if base is None:
            return None
        if trim_id == base.id:
            return base.name
        return self.compose_trim(base, trim_id[len(base.id) + 1 :].title())[1]

    def compose_trim(self, base: Optional[Trim], body_style: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
        """Return ``(trim_id, trim_name)`` for a base trim plus an optional body style."""
        if base is None:
            return None, None
        if not body_style or body_style.lower() in base.name.lower():
            return base.id, base.name
        return f"{base.id}-{slugify(body_style)}", f"{base.name} {body_style}"

    def trim_by_name(self, model_id: str, name: Optional[str]) -> Optional[str]:
        """Resolve a free-form trim name within a model, keeping a trailing body style."""
        text = prepare_text(name)
        if not text or model_id not in self.models:
            return None
        body_style = None
        if model_id in BODY_STYLE_MODELS:
            for style, aliases in BODY_STYLES.items():
                for alias in aliases:
                    if text.endswith(" " + alias):
                        body_style = style
                        text = text[: -len(alias) - 1].strip()
                        break
                if body_style:
                    break
        for trim in self.trims.values():
            if trim.model_id != model_id:
                continue
            if text == prepare_text(trim.name) or text in {prepare_text(alias) for alias in trim.aliases}:
                return self.compose_trim(trim, body_style)[0]
        return None

    def default_trim(self, model_id: str) -> Optional[Trim]:
        trim_id = DEFAULT_TRIMS.get(model_id)
        return self.trims.get(trim_id) if trim_id else None

    def trim_belongs_to(self, trim_id: str, model_id: str) -> bool:
        base = self.trim_for(trim_id)
        return base is not None and base.model_id == model_id

    # -- generations ----------------------------------------------------

    def generations_for(self, model_id: str) -> List[Generation]:
        return [gen for gen in self.generations.values() if gen.model_id == model_id]

    def infer_generation(self, model_id: str, year: Optional[int]) -> Optional[Generation]:
        if year is None:
            return None
        covering = [gen for gen in self.generations_for(model_id) if gen.covers(year)]
        if not covering:
            return None
        # overlapping model years resolve to the newer chassis
        return max(covering, key=lambda gen: gen.start_year)

    def generation_by_token(self, model_id: str, token: Optional[str], year: Optional[int] = None) -> Optional[Generation]:
        """Resolve ``992.1`` exactly, or a family token such as ``992`` by year."""
        token = prepare_text(token)
        if not token:
            return None
        candidates = [gen for gen in self.generations_for(model_id) if token in (gen.name, gen.family)]
        exact = [gen for gen in candidates if gen.name == token]
        if exact:
            return exact[0]
        if not candidates:
            return None
        candidates.sort(key=lambda gen: gen.start_year)
        if year is not None:
            for gen in candidates:
                if gen.covers(year):
                    return gen
        return candidates[0]

    def generation_belongs_to(self, generation_id: str, model_id: str, year: Optional[int]) -> bool:
        gen = self.generations.get(generation_id)
        if gen is None or gen.model_id != model_id:
            return False
        return year is None or gen.covers(year)

    # -- options / colors -----------------------------------------------

    def option_by_name(self, name: Optional[str]) -> Optional[str]:
        text = prepare_text(name)
        if not text:
            return None
        for option in self.options.values():
            if text in (option.id, prepare_text(option.name)):
                return option.id
        match = self.option_rules.best(text)
        if match and match.length == len(text):
            return match.output
        return None

    def color_by_alias(self, text: Optional[str]) -> Optional[Color]:
        key = prepare_text(text)
        color_id = self._color_aliases.get(key)
        if color_id is None and key.endswith(" metallic"):
            color_id = self._color_aliases.get(key[: -len(" metallic")])
        return self.colors.get(color_id) if color_id else None


@lru_cache
def get_catalog() -> Catalog:
    return Catalog()
