from types import SimpleNamespace

from app.services.listing_filters import ListingFilter, filter_listings


def _pet(name, species, size, *, breed="Mixed", description="A very good pet.", location="Austin, TX"):
    return SimpleNamespace(
        name=name, species=species, size=size, breed=breed, description=description, location=location
    )


PETS = [
    _pet("Rex", "dog", "large", breed="Labrador"),
    _pet("Bella", "dog", "small", breed="Beagle", location="Dallas, TX"),
    _pet("Milo", "cat", "small", description="Loves a sunny LABRADOR-sized windowsill."),
    _pet("Kiwi", "bird", "small", breed="Budgie", location="Austin, TX"),
]


def _names(items):
    return [p.name for p in items]


def test_empty_filter_keeps_everything():
    assert _names(filter_listings(PETS, ListingFilter())) == ["Rex", "Bella", "Milo", "Kiwi"]


def test_all_and_blank_values_switch_a_filter_off():
    flt = ListingFilter.build(search="  ", species="all", size="ALL", location="")
    assert flt.is_empty
    assert len(filter_listings(PETS, flt)) == len(PETS)


def test_search_matches_name_breed_or_description_case_insensitively():
    flt = ListingFilter.build(search="labrador")
    assert _names(filter_listings(PETS, flt)) == ["Rex", "Milo"]


def test_filters_combine_with_and():
    flt = ListingFilter.build(species="dog", size="small")
    assert _names(filter_listings(PETS, flt)) == ["Bella"]

    flt = ListingFilter.build(search="labrador", species="cat")
    assert _names(filter_listings(PETS, flt)) == ["Milo"]

    flt = ListingFilter.build(search="labrador", species="bird")
    assert filter_listings(PETS, flt) == []


def test_location_is_a_case_insensitive_substring():
    flt = ListingFilter.build(location="austin")
    assert _names(filter_listings(PETS, flt)) == ["Rex", "Milo", "Kiwi"]

    flt = ListingFilter.build(location="austin", size="small")
    assert _names(filter_listings(PETS, flt)) == ["Milo", "Kiwi"]
