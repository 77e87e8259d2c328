"""Collection path templates for records persisted in the record store."""

TESTS_COLLECTION_TEMPLATE: str = "classrooms/{classroom_id}/tests"
SUBMISSIONS_COLLECTION_TEMPLATE: str = "classrooms/{classroom_id}/test_submissions"


def tests_collection(classroom_id: str) -> str:
    return TESTS_COLLECTION_TEMPLATE.format(classroom_id=classroom_id)


def submissions_collection(classroom_id: str) -> str:
    return SUBMISSIONS_COLLECTION_TEMPLATE.format(classroom_id=classroom_id)
