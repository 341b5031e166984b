"""
Catalogue storage re-exports: plans, courses and published content.
"""
from core.db.catalog.plans_store import (
    SUBSCRIPTION_TYPES,
    create_plan,
    get_plan,
    list_plans,
    set_plan_active,
)
from core.db.catalog.courses_store import (
    effective_course_price,
    get_course,
    list_published_courses,
    list_user_courses,
    user_has_any_course,
)
from core.db.catalog.content_store import (
    get_active_categories,
    get_published_lessons,
    get_published_prompts,
)

__all__ = [
    "SUBSCRIPTION_TYPES",
    "create_plan",
    "get_plan",
    "list_plans",
    "set_plan_active",
    "effective_course_price",
    "get_course",
    "list_published_courses",
    "list_user_courses",
    "user_has_any_course",
    "get_active_categories",
    "get_published_lessons",
    "get_published_prompts",
]
