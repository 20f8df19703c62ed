from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Sequence

CONTENT_SAMPLE_CHARS = 5000

DocumentTypeCategory = Literal["company_data", "tender_documents", "proposal_examples", "other"]
ExtractionPriority = Literal["high", "medium", "low"]


class DocumentType(str, Enum):
    # company data
    COMPANY_PROFILE = "company_profile"
    PRICE_TABLE = "price_table"
    CALCULATION_METHOD = "calculation_method"
    CERTIFICATIONS = "certifications"
    TEAM_CVS = "team_cvs"
    PROJECT_PORTFOLIO = "project_portfolio"
    FINANCIAL_STATEMENTS = "financial_statements"

    # tender documents
    TENDER_DOCUMENT = "tender_document"
    TECHNICAL_SPECS = "technical_specifications"
    FORMULARIO_A1 = "formulario_a1_identificacion"
    FORMULARIO_A3 = "formulario_a3_propuesta_economica"
    FORMULARIO_A4 = "formulario_a4_modelo_precios"
    FORMULARIO_B2 = "formulario_b2_experiencia_especifica"
    FORMULARIO_B3 = "formulario_b3_experiencia_general"
    ANEXO_1 = "anexo_1_especificaciones"
    BILL_OF_QUANTITIES = "bill_of_quantities"

    # proposal examples
    PREVIOUS_PROPOSAL = "previous_proposal"
    WINNING_PROPOSAL = "winning_proposal"

    OTHER = "other"


@dataclass(frozen=True)
class DocumentTypeInfo:
    type: DocumentType
    label: str
    category: DocumentTypeCategory
    description: str
    extraction_priority: ExtractionPriority

    def as_dict(self) -> dict[str, str]:
        return {
            "type": self.type.value,
            "label": self.label,
            "category": self.category,
            "description": self.description,
            "extraction_priority": self.extraction_priority,
        }


def _info(
    doc_type: DocumentType,
    label: str,
    category: DocumentTypeCategory,
    description: str,
    priority: ExtractionPriority,
) -> tuple[DocumentType, DocumentTypeInfo]:
    return doc_type, DocumentTypeInfo(doc_type, label, category, description, priority)


DOCUMENT_TYPE_INFO: dict[DocumentType, DocumentTypeInfo] = dict(
    [
        _info(DocumentType.COMPANY_PROFILE, "Company Profile", "company_data",
              "General company information, history, and capabilities", "high"),
        _info(DocumentType.PRICE_TABLE, "Price Table / Rate Card", "company_data",
              "Pricing information for services, materials, or labor", "high"),
        _info(DocumentType.CALCULATION_METHOD, "Calculation Methodology", "company_data",
              "Methods and formulas for cost calculations", "medium"),
        _info(DocumentType.CERTIFICATIONS, "Certifications", "company_data",
              "Company certifications, licenses, and accreditations", "medium"),
        _info(DocumentType.TEAM_CVS, "Team CVs", "company_data",
              "Curriculum vitae of team members", "medium"),
        _info(DocumentType.PROJECT_PORTFOLIO, "Project Portfolio", "company_data",
              "Past projects, case studies, and references", "high"),
        _info(DocumentType.FINANCIAL_STATEMENTS, "Financial Statements", "company_data",
              "Balance sheets, income statements, financial reports", "low"),
        _info(DocumentType.TENDER_DOCUMENT, "Tender Document (DCD/RFP)", "tender_documents",
              "Main tender or RFP document with requirements", "high"),
        _info(DocumentType.TECHNICAL_SPECS, "Technical Specifications", "tender_documents",
              "Detailed technical requirements and specifications", "high"),
        _info(DocumentType.FORMULARIO_A1, "Formulario A-1 (Identificación)", "tender_documents",
              "RUPE Form A-1: Bidder identification and declarations", "high"),
        _info(DocumentType.FORMULARIO_A3, "Formulario A-3 (Propuesta Económica)", "tender_documents",
              "RUPE Form A-3: Economic proposal", "high"),
        _info(DocumentType.FORMULARIO_A4, "Formulario A-4 (Modelo de Precios)", "tender_documents",
              "RUPE Form A-4: Indicative price model with cost breakdown", "high"),
        _info(DocumentType.FORMULARIO_B2, "Formulario B-2 (Experiencia Específica)", "tender_documents",
              "RUPE Form B-2: Specific experience", "medium"),
        _info(DocumentType.FORMULARIO_B3, "Formulario B-3 (Experiencia General)", "tender_documents",
              "RUPE Form B-3: General experience", "medium"),
        _info(DocumentType.ANEXO_1, "Anexo 1 (Especificaciones Técnicas)", "tender_documents",
              "RUPE Annex 1: Technical specifications for services", "high"),
        _info(DocumentType.BILL_OF_QUANTITIES, "Bill of Quantities (BOQ)", "tender_documents",
              "Detailed list of materials and quantities", "high"),
        _info(DocumentType.PREVIOUS_PROPOSAL, "Previous Proposal", "proposal_examples",
              "Previously submitted proposal (won or lost)", "high"),
        _info(DocumentType.WINNING_PROPOSAL, "Winning Proposal", "proposal_examples",
              "A proposal that successfully won a tender", "high"),
        _info(DocumentType.OTHER, "Other Document", "other", "Miscellaneous document", "low"),
    ]
)

_SEP = r"[_\s-]*"

_FILENAME_FORM_PATTERNS: Sequence[tuple[re.Pattern[str], DocumentType]] = (
    (re.compile(rf"formulario{_SEP}a{_SEP}1", re.IGNORECASE), DocumentType.FORMULARIO_A1),
    (re.compile(rf"formulario{_SEP}a{_SEP}3", re.IGNORECASE), DocumentType.FORMULARIO_A3),
    (re.compile(rf"formulario{_SEP}a{_SEP}4", re.IGNORECASE), DocumentType.FORMULARIO_A4),
    (re.compile(rf"formulario{_SEP}b{_SEP}2", re.IGNORECASE), DocumentType.FORMULARIO_B2),
    (re.compile(rf"formulario{_SEP}b{_SEP}3", re.IGNORECASE), DocumentType.FORMULARIO_B3),
    (re.compile(rf"anexo{_SEP}1", re.IGNORECASE), DocumentType.ANEXO_1),
)

_CONTENT_FORM_PHRASES: Sequence[tuple[tuple[str, ...], DocumentType]] = (
    (("identificación del oferente", "identificacion del oferente"), DocumentType.FORMULARIO_A1),
    (("propuesta económica", "propuesta economica"), DocumentType.FORMULARIO_A3),
    (("modelo indicativo de precios",), DocumentType.FORMULARIO_A4),
    (("experiencia específica", "experiencia especifica"), DocumentType.FORMULARIO_B2),
    (("experiencia general",), DocumentType.FORMULARIO_B3),
)

_FILENAME_KEYWORDS: Sequence[tuple[tuple[str, ...], DocumentType]] = (
    (("price", "precio"), DocumentType.PRICE_TABLE),
    (("cv", "resume", "curriculum"), DocumentType.TEAM_CVS),
    (("project", "proyecto", "portfolio", "portafolio"), DocumentType.PROJECT_PORTFOLIO),
    (("certification", "certificación", "certificacion"), DocumentType.CERTIFICATIONS),
    (("proposal", "propuesta"), DocumentType.PREVIOUS_PROPOSAL),
    (("specification", "especificación", "especificacion"), DocumentType.TECHNICAL_SPECS),
    (("tender", "licitación", "licitacion", "rfp", "dcd"), DocumentType.TENDER_DOCUMENT),
)


def classify_document_type(filename: str, content: str) -> DocumentType:
    """Map a filename and extracted text to a DocumentType.

    RUPE form identifiers in the filename win, then characteristic form phrases
    in the first few thousand characters of content, then generic filename
    keywords. Anything else is ``OTHER``.
    """
    lower_filename = (filename or "").lower()
    lower_content = (content or "")[:CONTENT_SAMPLE_CHARS].lower()

    for pattern, doc_type in _FILENAME_FORM_PATTERNS:
        if pattern.search(lower_filename):
            return doc_type

    for phrases, doc_type in _CONTENT_FORM_PHRASES:
        if any(phrase in lower_content for phrase in phrases):
            return doc_type

    for keywords, doc_type in _FILENAME_KEYWORDS:
        if any(keyword in lower_filename for keyword in keywords):
            return doc_type

    return DocumentType.OTHER


def parse_document_type(value: str | None) -> DocumentType | None:
    if not value:
        return None
    try:
        return DocumentType(value.strip().lower())
    except ValueError:
        return None


def get_document_types_by_category() -> dict[str, list[DocumentTypeInfo]]:
    grouped: dict[str, list[DocumentTypeInfo]] = {
        "company_data": [],
        "tender_documents": [],
        "proposal_examples": [],
        "other": [],
    }
    for info in DOCUMENT_TYPE_INFO.values():
        grouped[info.category].append(info)
    return grouped
