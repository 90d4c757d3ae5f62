import pytest
from pydantic import ValidationError

from schemas import ProfileForm, ProjectForm, first_error, split_tags


def test_split_tags_dedupes_case_insensitively():
    assert split_tags("python, Docker ,  , PYTHON") == ["python", "Docker"]
    assert split_tags(None) == []
    assert split_tags(["Go", " go ", "Rust"]) == ["Go", "Rust"]


def test_username_is_normalized():
    assert ProfileForm(username="  @Dev.Ann_1 ").username == "dev.ann_1"


@pytest.mark.parametrize("username", ["ab", "a" * 33, "анна", "bad-name"])
def test_bad_usernames(username):
    with pytest.raises(ValidationError) as exc_info:
        ProfileForm(username=username)
    assert "Username" in first_error(exc_info.value)


def test_profile_urls_and_email():
    form = ProfileForm(github_url=" https://github.com/ann ", email="ann@example.com")
    assert form.github_url == "https://github.com/ann"

    with pytest.raises(ValidationError) as exc_info:
        ProfileForm(website_url="example.com")
    assert first_error(exc_info.value).startswith("Ссылка должна начинаться")

    with pytest.raises(ValidationError):
        ProfileForm(email="not-an-email")


def test_profile_skills_from_string():
    assert ProfileForm(skills="Python, SQL").skills == ["Python", "SQL"]
    assert ProfileForm().skills is None


def test_project_form_parses_tags():
    form = ProjectForm(
        title="  Team chat ",
        description="Чат",
        tech_stack="React, Node.js",
        contributors_needed="Designer",
    )
    assert form.title == "Team chat"
    assert form.tech_stack == ["React", "Node.js"]
    assert form.contributors_needed == ["Designer"]
    assert form.github_url is None


def test_project_form_requires_title_and_description():
    with pytest.raises(ValidationError):
        ProjectForm(title=" ", description="x")
    with pytest.raises(ValidationError):
        ProjectForm(title="x", description="")
    with pytest.raises(ValidationError):
        ProjectForm(title="x" * 201, description="x")
