import pytest

from docsearch.errors import InputValidationError
from docsearch.storage import FileStorage, organization_segment


def test_plain_organization_ids_are_used_as_is(tmp_path):
    storage = FileStorage(tmp_path)

    path = storage.save("org-1", "Menu Card.pdf", b"%PDF")

    assert path.startswith("organizations/org-1/")
    assert path.endswith("-Menu_Card.pdf")
    assert storage.read(path) == b"%PDF"
    assert storage.belongs_to("org-1", path)
    assert not storage.belongs_to("org", path)


def test_sanitized_organization_ids_do_not_share_a_folder(tmp_path):
    storage = FileStorage(tmp_path)

    spaced = storage.save("a b", "menu.pdf", b"1")
    underscored = storage.save("a_b", "menu.pdf", b"2")

    assert organization_segment("a b") != organization_segment("a_b")
    assert storage.belongs_to("a b", spaced)
    assert not storage.belongs_to("a b", underscored)
    assert not storage.belongs_to("a_b", spaced)


def test_delete_and_paths_outside_root(tmp_path):
    storage = FileStorage(tmp_path)
    path = storage.save("org", "menu.pdf", b"data")

    assert storage.delete(path) is True
    assert storage.delete(path) is False
    with pytest.raises(InputValidationError):
        storage.read("../../etc/passwd")
