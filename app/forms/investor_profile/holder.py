"""Investor Profile holder steps (3: primary holder, 4: secondary holder).

Both steps share one field shape: identity and contact for a person or an
entity, investment knowledge by product type, financial ranges, optional
government photo IDs and the affiliation disclosures. They differ only in
the question prefix, the label and the employment options offered.
"""

from __future__ import annotations

import copy
import re
from typing import Any, Sequence
import logging

from app.forms.shared import (
    country_errors,
    empty_address,
    normalize_address,
    normalize_phones,
    phone_errors,
)
from app.logic.boolean_maps import (
    count_true_flags,
    create_boolean_map,
    single_selection,
    validate_choice_object,
)
from app.logic.field_normalizer import (
    normalize_country_list,
    normalize_digits,
    normalize_integer,
    normalize_non_negative_int,
    normalize_nullable_string,
    normalize_required_string,
    normalize_upper_code,
    to_record,
)
from app.logic.leaf_validators import (
    is_minor,
    is_nine_digits,
    is_past,
    is_past_or_today,
    is_today_or_future,
    is_valid_country_code,
    is_valid_date,
    is_valid_email,
    is_valid_year,
    parse_iso_date,
    utc_today,
)
from app.logic.step_engine import Question, StepContext, StepDefinition, writer_for
from app.logic.validation import FieldErrors, ValidationResult, collect, fail, from_errors, ok

logger = logging.getLogger(__name__)

HOLDER_KIND_KEYS = ("person", "entity")
YES_NO_KEYS = ("yes", "no")
GENDER_KEYS = ("male", "female")
MARITAL_STATUS_KEYS = ("single", "married", "divorced", "domesticPartner", "widower")
PRIMARY_EMPLOYMENT_KEYS = ("employed", "selfEmployed", "retired", "unemployed", "student")
SECONDARY_EMPLOYMENT_KEYS = ("employed", "selfEmployed", "retired", "unemployed", "homemaker", "student")
KNOWLEDGE_LEVEL_KEYS = ("limited", "moderate", "extensive", "none")
TAX_BRACKET_KEYS = ("bracket_0_15", "bracket_15_1_32", "bracket_32_1_50", "bracket_50_1_plus")
RANGE_BUCKET_KEYS = ("under_50k", "50k_100k", "100k_250k", "250k_500k", "500k_1m", "1m_5m", "5m_plus")
INVESTMENT_TYPE_KEYS = (
    "commoditiesFutures",
    "equities",
    "exchangeTradedFunds",
    "fixedAnnuities",
    "fixedInsurance",
    "mutualFunds",
    "options",
    "preciousMetals",
    "realEstate",
    "unitInvestmentTrusts",
    "variableAnnuities",
    "leveragedInverseEtfs",
    "complexProducts",
    "alternativeInvestments",
    "other",
)
PHOTO_ID_KEYS = ("type", "idNumber", "countryOfIssue", "dateOfIssue", "dateOfExpiration")
RANGE_QUESTIONS = (
    ("annualIncomeRange", "Annual income"),
    ("netWorthExPrimaryResidenceRange", "Net worth (excluding primary residence)"),
    ("liquidNetWorthRange", "Liquid net worth"),
)

_RANGE_INDEX = {key: index for index, key in enumerate(RANGE_BUCKET_KEYS)}
_PO_BOX = re.compile(r"p\.?\s*o\.?\s*box", re.IGNORECASE)
_ANY_PHONE_MESSAGE = "Enter at least one phone number (home, business, or mobile)."
_LIQUID_EXCEEDS_MESSAGE = "Liquid net worth cannot exceed net worth (excluding primary residence)."

# disclosure -> (detail leaf, label used when required, completion message)
_DISCLOSURE_DETAILS: dict[str, tuple[tuple[str, str, str], ...]] = {
    "employeeAdvisorFirm": (),
    "relatedAdvisorFirmEmployee": (
        ("advisorEmployeeName", "Employee name", "Employee name is required."),
        ("advisorEmployeeRelationship", "Relationship", "Relationship is required."),
    ),
    "employeeBrokerDealer": (
        ("brokerDealerName", "Broker dealer name", "Broker-dealer name is required."),
    ),
    "relatedBrokerDealerEmployee": (
        ("relatedBrokerDealerName", "Broker dealer name", "Broker-dealer name is required."),
        ("relatedBrokerDealerEmployeeName", "Employee name", "Employee name is required."),
        ("relatedBrokerDealerRelationship", "Relationship", "Relationship is required."),
    ),
    "maintainsOtherBrokerageAccounts": (
        ("otherBrokerageFirms", "Brokerage firm(s)", "Firm name is required."),
    ),
    "exchangeOrFinraAffiliation": (
        ("affiliationDetails", "Affiliation details", "Affiliation details are required."),
    ),
    "seniorOfficerDirectorTenPercentPublicCompany": (
        ("publicCompanyNames", "Company name(s)", "Company name(s) are required."),
    ),
}
_YEARS_OF_EXPERIENCE = "yearsOfInvestmentExperience"
_YEARS_OF_EXPERIENCE_MESSAGE = "Years of investment experience is required."

_EMPLOYMENT_DETAIL_QUESTIONS = (
    ("occupation", "Occupation"),
    ("typeOfBusiness", "Type of business"),
    ("employerName", "Employer name"),
)
_EMPLOYER_ADDRESS_LABELS = (
    ("line1", "Employer address"),
    ("city", "Employer city"),
    ("stateProvince", "Employer state/province"),
    ("postalCode", "Employer ZIP/Postal code"),
)
_LEGAL_ADDRESS_LABELS = (
    ("line1", "Legal address"),
    ("city", "City"),
    ("stateProvince", "State/Province"),
    ("postalCode", "ZIP/Postal code"),
    ("country", "Country"),
)
_MAILING_ADDRESS_LABELS = (
    ("line1", "Mailing address"),
    ("city", "Mailing city"),
    ("stateProvince", "Mailing state/province"),
    ("postalCode", "Mailing ZIP/Postal code"),
    ("country", "Mailing country"),
)


# -- leaf helpers -------------------------------------------------------------


def _choice(keys: Sequence[str], path: str, label: str):
    def _validate(answer: Any, context: StepContext) -> ValidationResult:
        return validate_choice_object(
            answer,
            keys,
            path,
            not_object_message=f"Please choose one {label}.",
            count_message=f"Please choose exactly one {label}.",
        )

    return _validate


def _required_text(path: str, label: str):
    def _validate(answer: Any, context: StepContext) -> ValidationResult:
        value = normalize_required_string(answer)
        return ok(value) if value else fail({path: f"{label} is required."})

    return _validate


def _required_country(path: str, label: str):
    def _validate(answer: Any, context: StepContext) -> ValidationResult:
        value = normalize_upper_code(answer)
        return from_errors(country_errors(value, path, label), value)

    return _validate


def validate_required_year(answer: Any, path: str, label: str) -> ValidationResult:
    if answer is None or answer == "":
        return fail({path: f"{label} is required."})
    year = None if isinstance(answer, bool) else normalize_integer(answer)
    if year is None or not is_valid_year(year):
        return fail({path: f"Enter a valid {label.lower()} between 1900 and {utc_today().year}."})
    return ok(year)


def _nine_digit_id(path: str, label: str):
    def _validate(answer: Any, context: StepContext) -> ValidationResult:
        digits = normalize_digits(answer)
        if not digits:
            return fail({path: f"{label} is required."})
        if not is_nine_digits(digits):
            return fail({path: f"Enter a valid {label}."})
        return ok(digits)

    return _validate


def normalize_range(source: Any) -> dict[str, str | None]:
    record = to_record(source)
    bounds = {}
    for bound in ("fromBracket", "toBracket"):
        value = normalize_nullable_string(record.get(bound))
        bounds[bound] = value if value in _RANGE_INDEX else None
    return bounds


def _range_order_error(range_value: dict) -> str | None:
    if _RANGE_INDEX[range_value["fromBracket"]] <= _RANGE_INDEX[range_value["toBracket"]]:
        return None
    return "The From range must be less than or equal to the To range."


def _liquid_exceeds_net_worth(net_worth: dict, liquid: dict) -> bool:
    if not net_worth.get("toBracket") or not liquid.get("toBracket"):
        return False
    return _RANGE_INDEX[liquid["toBracket"]] > _RANGE_INDEX[net_worth["toBracket"]]


def normalize_photo_id(source: Any) -> dict[str, str | None]:
    record = to_record(source)
    block = {key: normalize_nullable_string(record.get(key)) for key in PHOTO_ID_KEYS}
    block["countryOfIssue"] = normalize_upper_code(record.get("countryOfIssue"))
    return block


def photo_id_errors(block: dict, path: str) -> FieldErrors:
    """An untouched photo ID passes; otherwise every leaf is checked."""
    if not any(block.get(key) for key in PHOTO_ID_KEYS):
        return {}
    errors: FieldErrors = {}
    if not block["type"]:
        errors[f"{path}.type"] = "Photo ID type is required."
    if not block["idNumber"]:
        errors[f"{path}.idNumber"] = "ID number is required."
    if not block["countryOfIssue"]:
        errors[f"{path}.countryOfIssue"] = "Country of issue is required."
    elif not is_valid_country_code(block["countryOfIssue"]):
        errors[f"{path}.countryOfIssue"] = "Enter a valid country of issue."

    issued = block["dateOfIssue"]
    if not issued:
        errors[f"{path}.dateOfIssue"] = "Date of issue is required."
    elif not is_valid_date(issued):
        errors[f"{path}.dateOfIssue"] = "Use YYYY-MM-DD format for date of issue."
    elif not is_past_or_today(issued):
        errors[f"{path}.dateOfIssue"] = "Date of issue cannot be in the future."

    expires = block["dateOfExpiration"]
    if not expires:
        errors[f"{path}.dateOfExpiration"] = "Date of expiration is required."
    elif not is_valid_date(expires):
        errors[f"{path}.dateOfExpiration"] = "Use YYYY-MM-DD format for date of expiration."
    elif not is_today_or_future(expires):
        errors[f"{path}.dateOfExpiration"] = "Photo ID is expired. Enter an unexpired ID."

    if is_valid_date(issued) and is_valid_date(expires) and parse_iso_date(expires) < parse_iso_date(issued):
        errors[f"{path}.dateOfExpiration"] = "Date of expiration must be on or after date of issue."
    return errors


def _is_photo_id_complete(block: dict) -> bool:
    return all(block.get(key) for key in PHOTO_ID_KEYS)


def _empty_by_type() -> dict[str, dict]:
    by_type = {
        key: {"knowledge": create_boolean_map(KNOWLEDGE_LEVEL_KEYS), "sinceYear": None}
        for key in INVESTMENT_TYPE_KEYS
    }
    by_type["other"]["label"] = None
    return by_type


def _selected(mapping: dict, keys: Sequence[str]) -> str | None:
    return single_selection(mapping, keys)


# -- step ---------------------------------------------------------------------


class HolderStep(StepDefinition):
    """Account holder details; ``prefix`` is ``step3`` or ``step4``."""

    def __init__(self, number: int, key: str, label: str, employment_keys: Sequence[str]) -> None:
        self.number = number
        self.key = key
        self.label = label
        self.prefix = f"step{number}"
        self.employment_keys = tuple(employment_keys)
        super().__init__()

    def _q(self, suffix: str) -> str:
        return f"{self.prefix}.{suffix}"

    # -- questions --------------------------------------------------------

    def build_questions(self) -> list[Question]:
        q = self._q
        questions = [
            Question(q("holder.kind"), _choice(HOLDER_KIND_KEYS, q("holder.kind"), "holder type"),
                     writer_for("holder", "kind")),
            Question(q("holder.name"), _required_text(q("holder.name"), "Name"), writer_for("holder", "name")),
            Question(q("holder.taxId.ssn"), _nine_digit_id(q("holder.taxId.ssn"), "SSN"),
                     writer_for("holder", "taxId", "ssn")),
            Question(q("holder.taxId.hasEin"), _choice(YES_NO_KEYS, q("holder.taxId.hasEin"), "EIN option"),
                     writer_for("holder", "taxId", "hasEin")),
            Question(q("holder.taxId.ein"), _nine_digit_id(q("holder.taxId.ein"), "EIN"),
                     writer_for("holder", "taxId", "ein")),
            Question(q("holder.contact.email"), self._validate_email, writer_for("holder", "contact", "email")),
            Question(q("holder.contact.dateOfBirth"), self._validate_date_of_birth,
                     writer_for("holder", "contact", "dateOfBirth")),
            Question(q("holder.contact.specifiedAdult"),
                     _required_text(q("holder.contact.specifiedAdult"), "Specified adult"),
                     writer_for("holder", "contact", "specifiedAdult")),
            Question(q("holder.contact.phones"), self._validate_phones, writer_for("holder", "contact", "phones")),
            Question(q("holder.legalAddress"), self._address_validator("legalAddress", _LEGAL_ADDRESS_LABELS),
                     writer_for("holder", "legalAddress")),
            Question(q("holder.mailingDifferent"),
                     _choice(YES_NO_KEYS, q("holder.mailingDifferent"), "mailing preference"),
                     writer_for("holder", "mailingDifferent")),
            Question(q("holder.mailingAddress"), self._address_validator("mailingAddress", _MAILING_ADDRESS_LABELS),
                     writer_for("holder", "mailingAddress")),
            Question(q("holder.citizenship.primary"), self._validate_primary_citizenship,
                     writer_for("holder", "citizenship", "primary")),
            Question(q("holder.citizenship.additional"), self._validate_additional_citizenship,
                     writer_for("holder", "citizenship", "additional")),
            Question(q("holder.gender"), _choice(GENDER_KEYS, q("holder.gender"), "gender"),
                     writer_for("holder", "gender")),
            Question(q("holder.maritalStatus"),
                     _choice(MARITAL_STATUS_KEYS, q("holder.maritalStatus"), "marital status"),
                     writer_for("holder", "maritalStatus")),
            Question(q("holder.employment.status"),
                     _choice(self.employment_keys, q("holder.employment.status"), "employment status"),
                     writer_for("holder", "employment", "status")),
        ]
        for leaf, label in _EMPLOYMENT_DETAIL_QUESTIONS:
            path = q(f"holder.employment.{leaf}")
            questions.append(Question(path, _required_text(path, label), writer_for("holder", "employment", leaf)))
        years_path = q("holder.employment.yearsEmployed")
        questions.append(
            Question(
                years_path,
                lambda answer, context: validate_required_year(answer, years_path, "Years employed"),
                writer_for("holder", "employment", "yearsEmployed"),
            )
        )
        for leaf, label in _EMPLOYER_ADDRESS_LABELS:
            path = q(f"holder.employment.employerAddress.{leaf}")
            questions.append(
                Question(path, _required_text(path, label), writer_for("holder", "employment", "employerAddress", leaf))
            )
        country_path = q("holder.employment.employerAddress.country")
        questions.append(
            Question(
                country_path,
                _required_country(country_path, "Employer country"),
                writer_for("holder", "employment", "employerAddress", "country"),
            )
        )
        questions.append(
            Question(q("investment.knowledgeExperience"), self._validate_knowledge_experience,
                     writer_for("investmentKnowledge"))
        )
        for range_key, _label in RANGE_QUESTIONS:
            questions.append(
                Question(q(f"financial.{range_key}"), self._range_validator(range_key),
                         writer_for("financialInformation", range_key))
            )
        questions.append(
            Question(q("financial.taxBracket"), _choice(TAX_BRACKET_KEYS, q("financial.taxBracket"), "tax bracket"),
                     writer_for("financialInformation", "taxBracket"))
        )
        for photo_id in ("photoId1", "photoId2"):
            questions.append(
                Question(q(f"govId.{photo_id}"), self._photo_id_validator(photo_id),
                         writer_for("governmentIdentification", photo_id))
            )
        for disclosure in _DISCLOSURE_DETAILS:
            questions.append(
                Question(q(f"disclosure.{disclosure}"), self._disclosure_validator(disclosure),
                         self._disclosure_writer(disclosure))
            )
        return questions

    # -- answer validators ------------------------------------------------

    def _validate_email(self, answer: Any, context: StepContext) -> ValidationResult:
        path = self._q("holder.contact.email")
        value = normalize_required_string(answer)
        if not value:
            return fail({path: "Email is required."})
        if not is_valid_email(value):
            return fail({path: "Enter a valid email."})
        return ok(value)

    def _validate_date_of_birth(self, answer: Any, context: StepContext) -> ValidationResult:
        path = self._q("holder.contact.dateOfBirth")
        value = normalize_nullable_string(answer)
        if not value:
            return fail({path: "Date of birth is required."})
        if not is_valid_date(value):
            return fail({path: "Enter a valid date of birth in YYYY-MM-DD format."})
        if not is_past(value):
            return fail({path: "Date of birth must be in the past."})
        return ok(value)

    def _validate_phones(self, answer: Any, context: StepContext) -> ValidationResult:
        phones = normalize_phones(answer)
        errors = phone_errors(phones, self._q("holder.contact.phones"), missing_message=_ANY_PHONE_MESSAGE)
        return from_errors(errors, phones)

    def _address_validator(self, group: str, labels: Sequence[tuple[str, str]]):
        prefix = self._q(f"holder.{group}")

        def _validate(answer: Any, context: StepContext) -> ValidationResult:
            address = normalize_address(answer)
            return from_errors(self._address_errors(address, prefix, labels, legal=group == "legalAddress"), address)

        return _validate

    @staticmethod
    def _address_errors(address: dict, prefix: str, labels: Sequence[tuple[str, str]], *, legal: bool) -> FieldErrors:
        errors: FieldErrors = {}
        for leaf, label in labels:
            path = f"{prefix}.{leaf}"
            if leaf == "country":
                errors.update(country_errors(address["country"], path, label))
            elif not address[leaf]:
                errors[path] = f"{label} is required."
            elif leaf == "line1" and legal and _PO_BOX.search(address["line1"]):
                errors[path] = "P.O. Box is not allowed for legal address."
        return errors

    def _validate_primary_citizenship(self, answer: Any, context: StepContext) -> ValidationResult:
        path = self._q("holder.citizenship.primary")
        countries = normalize_country_list(answer)
        current = context.current_fields
        if current is not None and _selected(current["holder"]["kind"], HOLDER_KIND_KEYS) != "person":
            if len(countries) != 1:
                return fail({path: "Select exactly one country."})
            return ok(countries)
        if not countries:
            return fail({path: "Select at least one country."})
        return ok(countries)

    def _validate_additional_citizenship(self, answer: Any, context: StepContext) -> ValidationResult:
        countries = normalize_country_list(answer)
        primary = (context.current_fields or {}).get("holder", {}).get("citizenship", {}).get("primary", [])
        if any(country in primary for country in countries):
            return fail(
                {
                    self._q("holder.citizenship.additional"):
                        "Additional citizenship cannot duplicate primary citizenship."
                }
            )
        return ok(countries)

    def _validate_knowledge_experience(self, answer: Any, context: StepContext) -> ValidationResult:
        """General knowledge plus one entry per product type, posted together."""
        record = to_record(answer)
        errors: FieldErrors = {}
        general = validate_choice_object(
            record.get("general"),
            KNOWLEDGE_LEVEL_KEYS,
            self._q("investment.generalKnowledge"),
            not_object_message="Please choose one knowledge level.",
            count_message="Please choose exactly one knowledge level.",
        )
        collect(errors, general)

        by_type_source = to_record(record.get("byType"))
        by_type = _empty_by_type()
        for type_key in INVESTMENT_TYPE_KEYS:
            type_prefix = self._q(f"investment.byType.{type_key}")
            type_record = to_record(by_type_source.get(type_key))
            knowledge = validate_choice_object(
                type_record.get("knowledge"),
                KNOWLEDGE_LEVEL_KEYS,
                f"{type_prefix}.knowledge",
                not_object_message="Please choose one knowledge level.",
                count_message="Please choose exactly one knowledge level.",
            )
            if not collect(errors, knowledge):
                continue
            by_type[type_key]["knowledge"] = knowledge.value
            if _selected(knowledge.value, KNOWLEDGE_LEVEL_KEYS) == "none":
                continue
            since_year = validate_required_year(type_record.get("sinceYear"), f"{type_prefix}.sinceYear", "Since year")
            if collect(errors, since_year):
                by_type[type_key]["sinceYear"] = since_year.value
            if type_key == "other":
                label = _required_text(self._q("investment.byType.other.label"), "Other investment type")(
                    type_record.get("label"), context
                )
                if collect(errors, label):
                    by_type["other"]["label"] = label.value

        if errors:
            return fail(errors)
        return ok({"general": general.value, "byType": by_type})

    def _range_validator(self, range_key: str):
        path = self._q(f"financial.{range_key}")

        def _validate(answer: Any, context: StepContext) -> ValidationResult:
            if not isinstance(answer, dict):
                return fail({f"{path}.fromBracket": "Choose a From range.", f"{path}.toBracket": "Choose a To range."})
            range_value = normalize_range(answer)
            errors: FieldErrors = {}
            if not range_value["fromBracket"]:
                errors[f"{path}.fromBracket"] = "Choose a From range."
            if not range_value["toBracket"]:
                errors[f"{path}.toBracket"] = "Choose a To range."
            if not errors:
                order_error = _range_order_error(range_value)
                if order_error:
                    errors[f"{path}.toBracket"] = order_error
            if errors:
                return fail(errors)
            if range_key == "liquidNetWorthRange" and context.current_fields is not None:
                net_worth = context.current_fields["financialInformation"]["netWorthExPrimaryResidenceRange"]
                if _liquid_exceeds_net_worth(net_worth, range_value):
                    return fail({f"{path}.toBracket": _LIQUID_EXCEEDS_MESSAGE})
            return ok(range_value)

        return _validate

    def _photo_id_validator(self, photo_id: str):
        path = self._q(f"govId.{photo_id}")

        def _validate(answer: Any, context: StepContext) -> ValidationResult:
            block = normalize_photo_id(answer)
            return from_errors(photo_id_errors(block, path), block)

        return _validate

    def _disclosure_validator(self, disclosure: str):
        path = self._q(f"disclosure.{disclosure}")
        details = _DISCLOSURE_DETAILS[disclosure]

        def _validate(answer: Any, context: StepContext) -> ValidationResult:
            if not details:
                return _choice(YES_NO_KEYS, path, "option")(answer, context)
            record = to_record(answer)
            selection = _choice(YES_NO_KEYS, path, "option")(record.get("selection"), context)
            if not selection.success:
                return selection
            said_yes = _selected(selection.value, YES_NO_KEYS) == "yes"
            value: dict[str, Any] = {"selection": selection.value}
            errors: FieldErrors = {}
            for leaf, label, _message in details:
                value[leaf] = normalize_nullable_string(record.get(leaf))
                if said_yes and not value[leaf]:
                    errors[f"{path}.{leaf}"] = f"{label} is required."
            if disclosure == "maintainsOtherBrokerageAccounts":
                years = normalize_non_negative_int(record.get(_YEARS_OF_EXPERIENCE))
                if said_yes and years is None:
                    errors[f"{path}.{_YEARS_OF_EXPERIENCE}"] = _YEARS_OF_EXPERIENCE_MESSAGE
                value[_YEARS_OF_EXPERIENCE] = years if said_yes else None
            return from_errors(errors, value)

        return _validate

    @staticmethod
    def _disclosure_writer(disclosure: str):
        def _write(fields: dict, value: Any) -> None:
            affiliations = fields["affiliations"]
            if not isinstance(value, dict) or "selection" not in value:
                affiliations[disclosure] = value
                return
            affiliations[disclosure] = value["selection"]
            for leaf, leaf_value in value.items():
                if leaf != "selection":
                    affiliations[leaf] = leaf_value

        return _write

    # -- field record -----------------------------------------------------

    def default_fields(self) -> dict:
        return self.normalize(None)

    def normalize(self, raw: Any, context: StepContext | None = None) -> dict:
        root = to_record(raw)
        holder = to_record(root.get("holder"))
        tax_id = to_record(holder.get("taxId"))
        contact = to_record(holder.get("contact"))
        citizenship = to_record(holder.get("citizenship"))
        employment = to_record(holder.get("employment"))
        knowledge = to_record(root.get("investmentKnowledge"))
        by_type_source = to_record(knowledge.get("byType"))
        financial = to_record(root.get("financialInformation"))
        government = to_record(root.get("governmentIdentification"))
        requirement = to_record(government.get("requirementContext"))
        affiliations_source = to_record(root.get("affiliations"))

        by_type = _empty_by_type()
        for type_key in INVESTMENT_TYPE_KEYS:
            type_record = to_record(by_type_source.get(type_key))
            by_type[type_key]["knowledge"] = create_boolean_map(KNOWLEDGE_LEVEL_KEYS, type_record.get("knowledge"))
            by_type[type_key]["sinceYear"] = normalize_non_negative_int(type_record.get("sinceYear"))
        by_type["other"]["label"] = normalize_nullable_string(to_record(by_type_source.get("other")).get("label"))

        affiliations: dict[str, Any] = {}
        for disclosure, details in _DISCLOSURE_DETAILS.items():
            affiliations[disclosure] = create_boolean_map(YES_NO_KEYS, affiliations_source.get(disclosure))
            for leaf, _label, _message in details:
                affiliations[leaf] = normalize_nullable_string(affiliations_source.get(leaf))
        affiliations[_YEARS_OF_EXPERIENCE] = normalize_non_negative_int(affiliations_source.get(_YEARS_OF_EXPERIENCE))

        fields = {
            "holder": {
                "kind": create_boolean_map(HOLDER_KIND_KEYS, holder.get("kind")),
                "name": normalize_required_string(holder.get("name")),
                "taxId": {
                    "ssn": normalize_digits(tax_id.get("ssn")),
                    "hasEin": create_boolean_map(YES_NO_KEYS, tax_id.get("hasEin")),
                    "ein": normalize_digits(tax_id.get("ein")),
                },
                "contact": {
                    "email": normalize_required_string(contact.get("email")),
                    "dateOfBirth": normalize_nullable_string(contact.get("dateOfBirth")),
                    "specifiedAdult": normalize_nullable_string(contact.get("specifiedAdult")),
                    "phones": normalize_phones(contact.get("phones")),
                },
                "legalAddress": normalize_address(holder.get("legalAddress")),
                "mailingDifferent": create_boolean_map(YES_NO_KEYS, holder.get("mailingDifferent")),
                "mailingAddress": normalize_address(holder.get("mailingAddress")),
                "citizenship": {
                    "primary": normalize_country_list(citizenship.get("primary")),
                    "additional": normalize_country_list(citizenship.get("additional")),
                },
                "gender": create_boolean_map(GENDER_KEYS, holder.get("gender")),
                "maritalStatus": create_boolean_map(MARITAL_STATUS_KEYS, holder.get("maritalStatus")),
                "employment": {
                    "status": create_boolean_map(self.employment_keys, employment.get("status")),
                    "occupation": normalize_nullable_string(employment.get("occupation")),
                    "yearsEmployed": normalize_non_negative_int(employment.get("yearsEmployed")),
                    "typeOfBusiness": normalize_nullable_string(employment.get("typeOfBusiness")),
                    "employerName": normalize_nullable_string(employment.get("employerName")),
                    "employerAddress": normalize_address(employment.get("employerAddress")),
                },
            },
            "investmentKnowledge": {
                "general": create_boolean_map(KNOWLEDGE_LEVEL_KEYS, knowledge.get("general")),
                "byType": by_type,
            },
            "financialInformation": {
                **{key: normalize_range(financial.get(key)) for key, _label in RANGE_QUESTIONS},
                "taxBracket": create_boolean_map(TAX_BRACKET_KEYS, financial.get("taxBracket")),
            },
            "governmentIdentification": {
                "photoId1": normalize_photo_id(government.get("photoId1")),
                "photoId2": normalize_photo_id(government.get("photoId2")),
                "requirementContext": {
                    key: requirement.get(key) if isinstance(requirement.get(key), bool) else None
                    for key in ("requiresDocumentaryId", "isNonResidentAlien")
                },
            },
            "affiliations": affiliations,
        }
        return self.sanitize(fields)

    def sanitize(self, fields: dict) -> dict:
        result = copy.deepcopy(fields)
        holder = result["holder"]
        kind = _selected(holder["kind"], HOLDER_KIND_KEYS)
        employment = holder["employment"]

        if kind == "entity":
            holder["taxId"]["ssn"] = None
            holder["contact"]["dateOfBirth"] = None
            holder["contact"]["specifiedAdult"] = None
            holder["gender"] = create_boolean_map(GENDER_KEYS)
            holder["maritalStatus"] = create_boolean_map(MARITAL_STATUS_KEYS)
            employment["status"] = create_boolean_map(self.employment_keys)
        elif kind == "person" and not is_minor(holder["contact"]["dateOfBirth"]):
            holder["contact"]["specifiedAdult"] = None
        if _selected(holder["taxId"]["hasEin"], YES_NO_KEYS) != "yes":
            holder["taxId"]["ein"] = None
        if _selected(holder["mailingDifferent"], YES_NO_KEYS) != "yes":
            holder["mailingAddress"] = empty_address()
        if not self._is_employment_active(result):
            for leaf in ("occupation", "yearsEmployed", "typeOfBusiness", "employerName"):
                employment[leaf] = None
            employment["employerAddress"] = empty_address()
        citizenship = holder["citizenship"]
        citizenship["additional"] = [code for code in citizenship["additional"] if code not in citizenship["primary"]]

        for type_key, entry in result["investmentKnowledge"]["byType"].items():
            if _selected(entry["knowledge"], KNOWLEDGE_LEVEL_KEYS) == "none":
                entry["sinceYear"] = None
                if type_key == "other":
                    entry["label"] = None

        affiliations = result["affiliations"]
        for disclosure, details in _DISCLOSURE_DETAILS.items():
            if _selected(affiliations[disclosure], YES_NO_KEYS) == "yes":
                continue
            for leaf, _label, _message in details:
                affiliations[leaf] = None
            if disclosure == "maintainsOtherBrokerageAccounts":
                affiliations[_YEARS_OF_EXPERIENCE] = None
        return result

    def apply_prefill(self, fields: dict, context: StepContext) -> dict:
        """Default the holder kind from the account type when none is chosen."""
        default_kind = context.prefill.get("holderKind")
        if default_kind not in HOLDER_KIND_KEYS or count_true_flags(fields["holder"]["kind"]) > 0:
            return fields
        result = copy.deepcopy(fields)
        result["holder"]["kind"] = {key: key == default_kind for key in HOLDER_KIND_KEYS}
        return self.sanitize(result)

    def _is_employment_active(self, fields: dict) -> bool:
        return _selected(fields["holder"]["employment"]["status"], self.employment_keys) in ("employed", "selfEmployed")

    def visible_question_ids(self, fields: dict) -> list[str]:
        q = self._q
        holder = fields["holder"]
        person = _selected(holder["kind"], HOLDER_KIND_KEYS) == "person"

        visible = [q("holder.kind"), q("holder.name")]
        if person:
            visible.append(q("holder.taxId.ssn"))
        visible.append(q("holder.taxId.hasEin"))
        if _selected(holder["taxId"]["hasEin"], YES_NO_KEYS) == "yes":
            visible.append(q("holder.taxId.ein"))
        visible.append(q("holder.contact.email"))
        if person:
            visible.append(q("holder.contact.dateOfBirth"))
            if is_minor(holder["contact"]["dateOfBirth"]):
                visible.append(q("holder.contact.specifiedAdult"))
        visible.extend([q("holder.contact.phones"), q("holder.legalAddress"), q("holder.mailingDifferent")])
        if _selected(holder["mailingDifferent"], YES_NO_KEYS) == "yes":
            visible.append(q("holder.mailingAddress"))
        visible.extend([q("holder.citizenship.primary"), q("holder.citizenship.additional")])
        if person:
            visible.extend([q("holder.gender"), q("holder.maritalStatus"), q("holder.employment.status")])
            if self._is_employment_active(fields):
                visible.extend(
                    [
                        q("holder.employment.occupation"),
                        q("holder.employment.yearsEmployed"),
                        q("holder.employment.typeOfBusiness"),
                        q("holder.employment.employerName"),
                    ]
                )
                visible.extend(
                    q(f"holder.employment.employerAddress.{leaf}")
                    for leaf in ("line1", "city", "stateProvince", "postalCode", "country")
                )
        visible.append(q("investment.knowledgeExperience"))
        visible.extend(q(f"financial.{key}") for key, _label in RANGE_QUESTIONS)
        visible.extend([q("financial.taxBracket"), q("govId.photoId1"), q("govId.photoId2")])
        visible.extend(q(f"disclosure.{disclosure}") for disclosure in _DISCLOSURE_DETAILS)
        return visible

    def response_extras(self, fields: dict, context: StepContext) -> dict:
        if "requiresStep4" in context.related:
            return {"requiresStep4": bool(context.related["requiresStep4"])}
        return {}

    # -- completion -------------------------------------------------------

    def validate_completion(self, fields: dict, context: StepContext | None = None) -> FieldErrors:
        q = self._q
        fields = self.sanitize(fields)
        holder = fields["holder"]
        errors: FieldErrors = {}
        kind = _selected(holder["kind"], HOLDER_KIND_KEYS)
        person = kind == "person"

        if kind is None:
            errors[q("holder.kind")] = "Choose Person or Entity."
        if not holder["name"]:
            errors[q("holder.name")] = "Name is required."
        if person:
            self._nine_digit_completion(errors, holder["taxId"]["ssn"], q("holder.taxId.ssn"), "SSN")
        has_ein = _selected(holder["taxId"]["hasEin"], YES_NO_KEYS)
        if has_ein is None:
            errors[q("holder.taxId.hasEin")] = "Select Yes or No for EIN."
        elif has_ein == "yes":
            self._nine_digit_completion(errors, holder["taxId"]["ein"], q("holder.taxId.ein"), "EIN")
        collect(errors, self._validate_email(holder["contact"]["email"], StepContext()))

        if person:
            dob_path = q("holder.contact.dateOfBirth")
            dob = holder["contact"]["dateOfBirth"]
            if not dob:
                errors[dob_path] = "Date of birth is required."
            elif not is_valid_date(dob):
                errors[dob_path] = "Use YYYY-MM-DD format."
            elif not is_past(dob):
                errors[dob_path] = "Date of birth must be in the past."
            if is_minor(dob) and not holder["contact"]["specifiedAdult"]:
                errors[q("holder.contact.specifiedAdult")] = "Specified adult is required for minors."

        if not any(holder["contact"]["phones"].values()):
            errors[q("holder.contact.phones.mobile")] = "Enter at least one phone number."
        errors.update(
            self._address_errors(holder["legalAddress"], q("holder.legalAddress"), _LEGAL_ADDRESS_LABELS, legal=True)
        )
        mailing_different = _selected(holder["mailingDifferent"], YES_NO_KEYS)
        if mailing_different is None:
            errors[q("holder.mailingDifferent")] = "Select whether mailing address is different."
        elif mailing_different == "yes":
            errors.update(
                self._address_errors(
                    holder["mailingAddress"], q("holder.mailingAddress"), _MAILING_ADDRESS_LABELS, legal=False
                )
            )

        citizenship = holder["citizenship"]
        if not citizenship["primary"]:
            errors[q("holder.citizenship.primary")] = "Select at least one primary citizenship."
        if kind == "entity" and len(citizenship["primary"]) != 1:
            errors[q("holder.citizenship.primary")] = "Entity must have exactly one primary country."

        if person:
            self._person_completion(errors, holder)

        self._knowledge_completion(errors, fields["investmentKnowledge"])
        self._financial_completion(errors, fields["financialInformation"])
        self._government_id_completion(errors, fields["governmentIdentification"])
        self._affiliation_completion(errors, fields["affiliations"])
        return errors

    @staticmethod
    def _nine_digit_completion(errors: FieldErrors, value: str | None, path: str, label: str) -> None:
        if not value:
            errors[path] = f"{label} is required."
        elif not is_nine_digits(value):
            errors[path] = f"Enter a valid {label}."

    def _person_completion(self, errors: FieldErrors, holder: dict) -> None:
        q = self._q
        if count_true_flags(holder["gender"]) != 1:
            errors[q("holder.gender")] = "Select gender."
        if count_true_flags(holder["maritalStatus"]) != 1:
            errors[q("holder.maritalStatus")] = "Select marital status."
        employment = holder["employment"]
        if count_true_flags(employment["status"]) != 1:
            errors[q("holder.employment.status")] = "Select employment status."
        if _selected(employment["status"], self.employment_keys) not in ("employed", "selfEmployed"):
            return
        for leaf, label in _EMPLOYMENT_DETAIL_QUESTIONS:
            if not employment[leaf]:
                errors[q(f"holder.employment.{leaf}")] = f"{label} is required."
        if not isinstance(employment["yearsEmployed"], int) or employment["yearsEmployed"] < 0:
            errors[q("holder.employment.yearsEmployed")] = "Enter years employed (0 or more)."
        address = employment["employerAddress"]
        for leaf, label in _EMPLOYER_ADDRESS_LABELS:
            if not address[leaf]:
                errors[q(f"holder.employment.employerAddress.{leaf}")] = f"{label} is required."
        errors.update(
            country_errors(address["country"], q("holder.employment.employerAddress.country"), "Employer country")
        )

    def _knowledge_completion(self, errors: FieldErrors, knowledge: dict) -> None:
        q = self._q
        if count_true_flags(knowledge["general"]) != 1:
            errors[q("investment.generalKnowledge")] = "Select one overall investment knowledge option."
        current_year = utc_today().year
        for type_key in INVESTMENT_TYPE_KEYS:
            entry = knowledge["byType"][type_key]
            if count_true_flags(entry["knowledge"]) != 1:
                errors[q(f"investment.byType.{type_key}.knowledge")] = "Select one knowledge option."
            selection = _selected(entry["knowledge"], KNOWLEDGE_LEVEL_KEYS)
            if selection is None or selection == "none":
                continue
            if not is_valid_year(entry["sinceYear"]):
                errors[q(f"investment.byType.{type_key}.sinceYear")] = (
                    f"Enter a valid Since Year between 1900 and {current_year}."
                )
            if type_key == "other" and not entry.get("label"):
                errors[q("investment.byType.other.label")] = "Other investment type is required."

    def _financial_completion(self, errors: FieldErrors, financial: dict) -> None:
        for range_key, label in RANGE_QUESTIONS:
            path = self._q(f"financial.{range_key}")
            range_value = financial[range_key]
            if not range_value["fromBracket"]:
                errors[f"{path}.fromBracket"] = f"{label} from range is required."
            if not range_value["toBracket"]:
                errors[f"{path}.toBracket"] = f"{label} to range is required."
            if range_value["fromBracket"] and range_value["toBracket"]:
                order_error = _range_order_error(range_value)
                if order_error:
                    errors[f"{path}.toBracket"] = order_error
        if _liquid_exceeds_net_worth(financial["netWorthExPrimaryResidenceRange"], financial["liquidNetWorthRange"]):
            errors[self._q("financial.liquidNetWorthRange.toBracket")] = _LIQUID_EXCEEDS_MESSAGE
        if count_true_flags(financial["taxBracket"]) != 1:
            errors[self._q("financial.taxBracket")] = "Select one tax bracket."

    def _government_id_completion(self, errors: FieldErrors, government: dict) -> None:
        for photo_id in ("photoId1", "photoId2"):
            errors.update(photo_id_errors(government[photo_id], self._q(f"govId.{photo_id}")))
        requirement = government["requirementContext"]
        if requirement["requiresDocumentaryId"] is True or requirement["isNonResidentAlien"] is True:
            if not (_is_photo_id_complete(government["photoId1"]) or _is_photo_id_complete(government["photoId2"])):
                errors[self._q("govId.photoId1")] = (
                    "At least one complete, unexpired government photo ID is required."
                )

    def _affiliation_completion(self, errors: FieldErrors, affiliations: dict) -> None:
        for disclosure, details in _DISCLOSURE_DETAILS.items():
            path = self._q(f"disclosure.{disclosure}")
            if count_true_flags(affiliations[disclosure]) != 1:
                errors[path] = "Select Yes or No."
                continue
            if _selected(affiliations[disclosure], YES_NO_KEYS) != "yes":
                continue
            for leaf, _label, message in details:
                if not affiliations[leaf]:
                    errors[f"{path}.{leaf}"] = message
            if disclosure == "maintainsOtherBrokerageAccounts":
                years = affiliations[_YEARS_OF_EXPERIENCE]
                if not isinstance(years, int) or years < 0:
                    errors[f"{path}.{_YEARS_OF_EXPERIENCE}"] = _YEARS_OF_EXPERIENCE_MESSAGE


def primary_holder_step() -> HolderStep:
    return HolderStep(
        3,
        "STEP_3_PRIMARY_ACCOUNT_HOLDER",
        "STEP 3. PRIMARY ACCOUNT HOLDER INFORMATION",
        PRIMARY_EMPLOYMENT_KEYS,
    )


def secondary_holder_step() -> HolderStep:
    return HolderStep(
        4,
        "STEP_4_SECONDARY_ACCOUNT_HOLDER",
        "STEP 4. SECONDARY ACCOUNT HOLDER INFORMATION (Joint Holder #2, Trustee #1, Entity Manager)",
        SECONDARY_EMPLOYMENT_KEYS,
    )


__all__ = [
    "HolderStep",
    "INVESTMENT_TYPE_KEYS",
    "KNOWLEDGE_LEVEL_KEYS",
    "RANGE_BUCKET_KEYS",
    "normalize_photo_id",
    "normalize_range",
    "photo_id_errors",
    "primary_holder_step",
    "secondary_holder_step",
    "validate_required_year",
]
