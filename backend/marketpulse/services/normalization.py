"""Raw listing -> canonical taxonomy.

Stage 1 matches explicit rule lists (model first, then model-scoped trims,
body styles and options). Stage 2 settles the generation from an explicit
token or the model's year table. Stage 3 asks the AI extractor only when a
model or trim is still missing and the run still allows it. Stage 4 records
validation problems without ever raising.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from marketpulse.schemas.listing import CanonicalVehicleIdentity, NormalizationMethod, NormalizedListing, RawListing
from marketpulse.taxonomy.catalog import (
    BODY_STYLE_MODELS,
    PAINT_TO_SAMPLE_OPTION_ID,
    Catalog,
    Generation,
    Trim,
    get_catalog,
    slugify,
)
from marketpulse.taxonomy.rules import RuleMatch, RuleSet, prepare_text
from .colors import normalize_color
from .run_context import RunContext
from .taxonomy_extractor import (
    DisabledExtractor,
    ExtractionFailure,
    ExtractionRequest,
    PartialTaxonomy,
    TaxonomyExtractor,
)
from .validation import (
    check_model_year,
    check_price,
    check_vin,
    check_vin_year,
    normalize_vin,
    vin_model_years,
    year_from_text,
)

logger = logging.getLogger(__name__)

METHOD_CONFIDENCE = {
    "rules": 1.0,
    "ai": 0.75,
    "rules_degraded": 0.5,
    "unresolved": 0.0,
}

# "1,996 miles", "996 mi", "718-mile": a number followed by a distance unit
MILEAGE_SUFFIX = re.compile(r" (?:k )?(?:mi|miles?|km|kilometers?)\b")


def _first_match(rules: RuleSet, text: str) -> Optional[RuleMatch]:
    """Best match that is not the numeric part of a mileage."""
    for match in rules.matches(text):
        if not MILEAGE_SUFFIX.match(text, match.end):
            return match
    return None


@dataclass
class _Fallback:
    attempted: bool = False
    result: Optional[PartialTaxonomy] = None
    contributed: bool = False


@dataclass
class _Taxonomy:
    model_id: Optional[str] = None
    base_trim: Optional[Trim] = None
    trim_id: Optional[str] = None
    trim_name: Optional[str] = None
    generation: Optional[Generation] = None
    option_ids: List[str] = field(default_factory=list)


class TaxonomyNormalizer:
    def __init__(self, extractor: Optional[TaxonomyExtractor] = None, catalog: Optional[Catalog] = None) -> None:
        self.extractor = extractor or DisabledExtractor()
        self.catalog = catalog or get_catalog()

    def normalize(self, raw: RawListing, context: Optional[RunContext] = None) -> NormalizedListing:
        errors: List[str] = []
        vin_error = check_vin(raw.vin)
        if vin_error:
            errors.append(vin_error)
        vin = normalize_vin(raw.vin)

        text = prepare_text(raw.title)
        stated_year = raw.year or year_from_text(raw.title)
        year = stated_year or self._year_from_vin(vin, raw)
        color = normalize_color(raw.exterior_color_text, self.catalog)

        fallback = _Fallback()
        taxonomy = _Taxonomy()

        # stage 1: model, then trims scoped to it
        taxonomy.model_id, excluded = self._detect_model(text)
        if taxonomy.model_id is None and excluded is None:
            self._call_fallback(raw, year, color.name, fallback, context)
            taxonomy.model_id = self._model_from_fallback(fallback)
        if taxonomy.model_id:
            self._detect_trim(text, taxonomy)
            if taxonomy.trim_id is None:
                self._call_fallback(raw, year, color.name, fallback, context)
                self._trim_from_fallback(fallback, taxonomy)

            # stage 2
            taxonomy.generation = self._resolve_generation(text, taxonomy.model_id, year, fallback, errors)

        taxonomy.option_ids = self._detect_options(raw, fallback)
        if color.is_paint_to_sample and PAINT_TO_SAMPLE_OPTION_ID not in taxonomy.option_ids:
            taxonomy.option_ids.append(PAINT_TO_SAMPLE_OPTION_ID)

        # stage 4
        errors.extend(self._validate(raw, vin, stated_year, year, taxonomy, excluded))

        identity = None
        if taxonomy.model_id:
            identity = CanonicalVehicleIdentity(
                model_id=taxonomy.model_id,
                trim_id=taxonomy.trim_id,
                generation_id=taxonomy.generation.id if taxonomy.generation else None,
                model_year=year,
            )

        method = self._method(taxonomy, fallback)
        normalized = NormalizedListing(
            raw=raw,
            identity=identity,
            vin=vin,
            exterior_color_id=color.color_id,
            exterior_color_name=color.name,
            is_paint_to_sample=color.is_paint_to_sample,
            option_ids=taxonomy.option_ids,
            validation_errors=errors,
            method=method,
            confidence=METHOD_CONFIDENCE[method],
        )
        logger.debug(
            "Normalized %s -> model=%s trim=%s generation=%s method=%s errors=%s",
            raw.source_url,
            taxonomy.model_id,
            taxonomy.trim_id,
            identity.generation_id if identity else None,
            method,
            len(errors),
        )
        return normalized

    # -- stage 1 ----------------------------------------------------------

    def _detect_model(self, text: str) -> Tuple[Optional[str], Optional[RuleMatch]]:
        """Return ``(model_id, excluded_match)``.

        A model alias ("911", "718 Boxster") wins over everything. Without one,
        a model outside the catalog ("Cayenne", "918") beats a model implied by
        a trim word, so "Cayenne Turbo S" is never read as a 911 Turbo S.
        """
        explicit = _first_match(self.catalog.model_rules, text)
        if explicit:
            return explicit.output, None
        excluded = _first_match(self.catalog.excluded_model_rules, text)
        if excluded:
            return None, excluded
        implied = _first_match(self.catalog.implied_model_rules, text)
        return (implied.output if implied else None), None

    def _detect_trim(self, text: str, taxonomy: _Taxonomy) -> None:
        model_id = taxonomy.model_id
        match = self.catalog.trim_rules[model_id].best(text)
        base = self.catalog.trims[match.output] if match else None

        body_style = None
        if model_id in BODY_STYLE_MODELS:
            body_match = self.catalog.body_style_rules.best(text)
            body_style = body_match.output if body_match else None
            if base is None and body_style:
                base = self.catalog.trims.get(f"{model_id}:{slugify(body_style)}")
        if base is None:
            base = self.catalog.default_trim(model_id)

        taxonomy.base_trim = base
        taxonomy.trim_id, taxonomy.trim_name = self.catalog.compose_trim(base, body_style)

    def _detect_options(self, raw: RawListing, fallback: _Fallback) -> List[str]:
        option_ids = self.catalog.option_rules.all_outputs(prepare_text(raw.options_text))
        for option_id in self.catalog.option_rules.all_outputs(prepare_text(raw.title)):
            if option_id not in option_ids:
                option_ids.append(option_id)
        if fallback.result:
            for name in fallback.result.options:
                option_id = self.catalog.option_by_name(name)
                if option_id is None:
                    logger.debug("Discarding AI option outside vocabulary: %r", name)
                elif option_id not in option_ids:
                    option_ids.append(option_id)
        return option_ids

    # -- stage 2 ----------------------------------------------------------

    def _resolve_generation(
        self,
        text: str,
        model_id: str,
        year: Optional[int],
        fallback: _Fallback,
        errors: List[str],
    ) -> Optional[Generation]:
        token = self._generation_token(text, model_id)
        if token:
            explicit = self.catalog.generation_by_token(model_id, token, year)
            if explicit and (year is None or explicit.covers(year)):
                return explicit
            if explicit:
                errors.append(f"Generation {explicit.name} does not cover model year {year}")

        inferred = self.catalog.infer_generation(model_id, year)
        if inferred:
            return inferred

        if fallback.result and fallback.result.generation:
            suggested = self.catalog.generation_by_token(model_id, fallback.result.generation, year)
            if suggested and (year is None or suggested.covers(year)):
                fallback.contributed = True
                return suggested
        return None

    def _generation_token(self, text: str, model_id: str) -> Optional[str]:
        match = _first_match(self.catalog.generation_rules[model_id], text)
        return match.output if match else None

    # -- stage 3 ----------------------------------------------------------

    def _call_fallback(
        self,
        raw: RawListing,
        year: Optional[int],
        color_name: Optional[str],
        fallback: _Fallback,
        context: Optional[RunContext],
    ) -> None:
        if fallback.attempted:
            return
        fallback.attempted = True
        if not self.extractor.enabled or (context is not None and not context.ai_enabled):
            return

        request = ExtractionRequest(
            title=raw.title,
            year=year,
            price=raw.price,
            mileage=raw.mileage,
            color=color_name or raw.exterior_color_text,
            options_text=raw.options_text,
        )
        if context is not None:
            context.ai_calls += 1
        outcome = self.extractor.extract(request)
        if isinstance(outcome, ExtractionFailure):
            if outcome.kind == "quota" and context is not None:
                context.disable_ai(outcome.message)
            logger.info("AI fallback unavailable for %s (%s)", raw.source_url, outcome.kind)
            return
        fallback.result = outcome

    def _model_from_fallback(self, fallback: _Fallback) -> Optional[str]:
        if not fallback.result or not fallback.result.model:
            return None
        model = self.catalog.model_by_name(fallback.result.model)
        if model is None:
            logger.debug("Discarding AI model outside vocabulary: %r", fallback.result.model)
            return None
        fallback.contributed = True
        return model.id

    def _trim_from_fallback(self, fallback: _Fallback, taxonomy: _Taxonomy) -> None:
        if not fallback.result or not fallback.result.trim:
            return
        trim_id = self.catalog.trim_by_name(taxonomy.model_id, fallback.result.trim)
        if trim_id is None:
            logger.debug("Discarding AI trim outside %s vocabulary: %r", taxonomy.model_id, fallback.result.trim)
            return
        fallback.contributed = True
        taxonomy.trim_id = trim_id
        taxonomy.base_trim = self.catalog.trim_for(trim_id)
        taxonomy.trim_name = self.catalog.trim_name(trim_id)

    # -- stage 4 ----------------------------------------------------------

    def _validate(
        self,
        raw: RawListing,
        vin: Optional[str],
        stated_year: Optional[int],
        year: Optional[int],
        taxonomy: _Taxonomy,
        excluded,
    ) -> List[str]:
        errors: List[str] = []
        checks = (
            check_vin_year(vin, stated_year),
            check_model_year(taxonomy.base_trim, taxonomy.trim_name, year),
            check_price(raw.price, taxonomy.base_trim),
        )
        errors.extend(error for error in checks if error)
        if excluded is not None:
            errors.append(f"Model outside catalog: {excluded.output}")
        elif taxonomy.model_id is None:
            errors.append("Unresolved model")
        elif taxonomy.trim_id is None:
            errors.append(f"Unresolved trim for model {taxonomy.model_id}")
        return errors

    def _year_from_vin(self, vin: Optional[str], raw: RawListing) -> Optional[int]:
        latest = raw.scraped_at.year + 1
        candidates = [year for year in vin_model_years(vin) if year <= latest]
        return max(candidates) if candidates else None

    def _method(self, taxonomy: _Taxonomy, fallback: _Fallback) -> NormalizationMethod:
        if taxonomy.model_id is None:
            return "unresolved"
        if fallback.contributed:
            return "ai"
        if fallback.attempted:
            return "rules_degraded"
        return "rules"
