from __future__ import annotations

from compliance_store.domain.models import (
    ComplianceTier,
    RequirementDefinition,
    RequirementTemplate,
    UserRole,
)


def _req(
    name: str,
    description: str,
    category: str,
    requirement_type: str,
    points_value: int,
    due_days: int,
    display_order: int,
    *,
    is_mandatory: bool = True,
) -> RequirementDefinition:
    return RequirementDefinition(
        name=name,
        description=description,
        category=category,
        requirement_type=requirement_type,
        is_mandatory=is_mandatory,
        points_value=points_value,
        due_days_from_assignment=due_days,
        display_order=display_order,
    )


ROLE_TEMPLATES: tuple[RequirementTemplate, ...] = (
    RequirementTemplate(
        UserRole.IT,
        ComplianceTier.BASIC,
        (
            _req("CPR/AED Certification", "Current CPR and AED certification from approved provider",
                 "certification", "certification", 20, 30, 1),
            _req("Water Safety Training", "Complete water safety fundamentals course",
                 "training", "training", 15, 45, 2),
            _req("Background Check", "Submit criminal background check documentation",
                 "documentation", "document", 10, 15, 3),
        ),
    ),
    RequirementTemplate(
        UserRole.IT,
        ComplianceTier.ROBUST,
        (
            _req("Advanced Lifeguard Training", "Complete advanced lifeguarding techniques course",
                 "training", "training", 25, 60, 1),
            _req("Teaching Methodology", "Complete instructional design and teaching methods course",
                 "pedagogy", "training", 20, 90, 2),
            _req("Practical Teaching Assessment", "Complete supervised teaching practicum",
                 "assessment", "assessment", 30, 120, 3),
        ),
    ),
    RequirementTemplate(
        UserRole.IP,
        ComplianceTier.BASIC,
        (
            _req("Instructor Certification", "Valid instructor certification", "certification", "certification", 25, 15, 1),
            _req("Teaching Log", "Log of supervised teaching hours", "documentation", "document", 15, 30, 2),
            _req("Provisional Assessment", "Provisional instructor assessment", "assessment", "assessment", 20, 60, 3),
        ),
    ),
    RequirementTemplate(
        UserRole.IP,
        ComplianceTier.ROBUST,
        (
            _req("Advanced Teaching Certification", "Advanced teaching certification", "certification", "certification", 30, 45, 1),
            _req("Teaching Portfolio", "Portfolio of delivered courses", "portfolio", "document", 25, 90, 2),
            _req("Mentor Observation", "Observed session with a mentor", "assessment", "assessment", 20, 60, 3),
            _req("Student Feedback Collection", "Collected student feedback forms", "documentation", "document", 15, 75, 4),
            _req("Advanced Teaching Methods Course", "Advanced teaching methods course", "training", "training", 25, 120, 5),
            _req("Professional Development Plan", "Written professional development plan", "planning", "document", 10, 45, 6),
        ),
    ),
    RequirementTemplate(
        UserRole.IC,
        ComplianceTier.BASIC,
        (
            _req("Current Instructor Credentials", "Current instructor credentials", "certification", "certification", 30, 30, 1),
            _req("Teaching Hours Log", "Log of teaching hours", "documentation", "document", 25, 90, 2),
            _req("Student Outcomes Report", "Report on student outcomes", "performance", "document", 20, 120, 3),
            _req("Continuing Education", "Continuing education credits", "training", "training", 25, 180, 4),
        ),
    ),
    RequirementTemplate(
        UserRole.IC,
        ComplianceTier.ROBUST,
        (
            _req("Master Instructor Certification", "Master instructor certification", "certification", "certification", 40, 60, 1),
            _req("Specialized Teaching Credential", "Specialized teaching credential", "certification", "certification", 35, 90, 2),
            _req("Instructor Development Course", "Instructor development course", "training", "training", 30, 120, 3),
            _req("Course Development Portfolio", "Course development portfolio", "portfolio", "document", 25, 180, 4),
            _req("Mentorship Documentation", "Mentorship documentation", "mentorship", "document", 20, 90, 5),
            _req("Advanced Assessment Methods", "Advanced assessment methods course", "training", "training", 25, 150, 6),
            _req("Quality Improvement Project", "Quality improvement project", "project", "document", 30, 240, 7),
            _req("Research Contribution", "Research contribution", "research", "document", 25, 365, 8, is_mandatory=False),
        ),
    ),
    RequirementTemplate(
        UserRole.AP,
        ComplianceTier.BASIC,
        (
            _req("Provider Certification", "Authorized provider certification", "certification", "certification", 30, 30, 1),
            _req("Facility Documentation", "Training facility documentation", "documentation", "document", 25, 45, 2),
            _req("Instructor Roster", "Current instructor roster", "documentation", "document", 20, 60, 3),
        ),
    ),
    RequirementTemplate(
        UserRole.AP,
        ComplianceTier.ROBUST,
        (
            _req("Quality Management System", "Quality management system documentation", "quality", "document", 35, 90, 1),
            _req("Advanced Provider Certification", "Advanced provider certification", "certification", "certification", 30, 45, 2),
            _req("Instructor Development Program", "Instructor development program", "training", "document", 25, 120, 3),
            _req("Student Outcomes Analysis", "Student outcomes analysis", "performance", "document", 25, 180, 4),
            _req("Facility Excellence Certification", "Facility excellence certification", "certification", "certification", 20, 90, 5),
            _req("Community Outreach Program", "Community outreach program", "outreach", "document", 15, 240, 6, is_mandatory=False),
            _req("Advanced Reporting System", "Advanced reporting system", "administration", "document", 20, 150, 7),
        ),
    ),
)


def get_all_role_templates() -> list[RequirementTemplate]:
    return list(ROLE_TEMPLATES)


def get_template(role: UserRole, tier: ComplianceTier) -> RequirementTemplate | None:
    for template in ROLE_TEMPLATES:
        if template.role == role and template.tier == tier:
            return template
    return None
