from common_core.identity import derive_machine_name


def test_machine_name_lowercases_and_replaces_spaces():
    assert derive_machine_name("My Site") == "my_site"


def test_machine_name_truncates_to_32_chars():
    name = derive_machine_name("A Very Long Site Name That Goes On And On")
    assert name == "a_very_long_site_name_that_goes_"
    assert len(name) == 32


def test_machine_name_is_stable_and_empty_safe():
    assert derive_machine_name("ACME Corp") == derive_machine_name("ACME Corp")
    assert derive_machine_name("already_machine") == "already_machine"
    assert derive_machine_name("") == ""
    assert derive_machine_name(None) == ""
