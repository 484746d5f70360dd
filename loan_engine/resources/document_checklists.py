"""Mandatory outgoing documents per project type.

Base categories are asked from every borrower on the file (primary, and the
co-borrower when there is one). Project categories are asked from the primary
borrower only.
"""

from loan_engine.schemas.document import DocumentCategory
from loan_engine.schemas.loan import ProjectType

BASE_CATEGORIES: tuple[DocumentCategory, ...] = (
    DocumentCategory.IDENTITY,
    DocumentCategory.PROOF_OF_ADDRESS,
    DocumentCategory.TAX_NOTICE,
    DocumentCategory.PAYSLIPS,
    DocumentCategory.EMPLOYMENT_CONTRACT,
    DocumentCategory.BANK_STATEMENTS,
)

PROJECT_CATEGORIES: dict[ProjectType, tuple[DocumentCategory, ...]] = {
    ProjectType.PRIMARY_RESIDENCE: (
        DocumentCategory.COMPROMISE_OF_SALE,
        DocumentCategory.PROPERTY_DIAGNOSTICS,
    ),
    ProjectType.SECONDARY_RESIDENCE: (
        DocumentCategory.COMPROMISE_OF_SALE,
        DocumentCategory.PROPERTY_DIAGNOSTICS,
        DocumentCategory.PRIMARY_RESIDENCE_PROOF,
    ),
    ProjectType.RENTAL_INVESTMENT: (
        DocumentCategory.COMPROMISE_OF_SALE,
        DocumentCategory.PROPERTY_DIAGNOSTICS,
        DocumentCategory.RENTAL_ESTIMATION,
    ),
    ProjectType.CONSTRUCTION: (
        DocumentCategory.LAND_PURCHASE_AGREEMENT,
        DocumentCategory.BUILDING_PERMIT,
        DocumentCategory.CONSTRUCTION_CONTRACT,
        DocumentCategory.CONSTRUCTION_PLANS,
        DocumentCategory.BUILDER_INSURANCE,
    ),
    ProjectType.RENOVATION: (
        DocumentCategory.PROPERTY_TITLE,
        DocumentCategory.RENOVATION_QUOTES,
    ),
}

CATEGORY_LABELS: dict[DocumentCategory, str] = {
    DocumentCategory.IDENTITY: "Identity document",
    DocumentCategory.PROOF_OF_ADDRESS: "Proof of address",
    DocumentCategory.TAX_NOTICE: "Tax notices (last two years)",
    DocumentCategory.PAYSLIPS: "Last three payslips",
    DocumentCategory.EMPLOYMENT_CONTRACT: "Employment contract or employer certificate",
    DocumentCategory.BANK_STATEMENTS: "Bank statements (last three months)",
    DocumentCategory.COMPROMISE_OF_SALE: "Signed compromise of sale",
    DocumentCategory.PROPERTY_DIAGNOSTICS: "Property diagnostics",
    DocumentCategory.PRIMARY_RESIDENCE_PROOF: "Proof of primary residence",
    DocumentCategory.RENTAL_ESTIMATION: "Rental estimation",
    DocumentCategory.LAND_PURCHASE_AGREEMENT: "Land purchase agreement or title",
    DocumentCategory.BUILDING_PERMIT: "Building permit",
    DocumentCategory.CONSTRUCTION_CONTRACT: "Construction contract",
    DocumentCategory.CONSTRUCTION_PLANS: "Construction plans",
    DocumentCategory.BUILDER_INSURANCE: "Builder's damage insurance certificate",
    DocumentCategory.PROPERTY_TITLE: "Property title deed",
    DocumentCategory.RENOVATION_QUOTES: "Renovation quotes",
    DocumentCategory.OTHER: "Other",
}
