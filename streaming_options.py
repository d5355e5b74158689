from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class CountryOption:
    value: str
    label: str


@dataclass(frozen=True)
class StreamingService:
    key: str
    label: str
    provider_id: int
    countries: List[str] = field(default_factory=list)


COUNTRIES = [
    CountryOption("us", "United States"),
    CountryOption("ca", "Canada"),
    CountryOption("gb", "United Kingdom"),
    CountryOption("fr", "France"),
    CountryOption("de", "Germany"),
    CountryOption("it", "Italy"),
    CountryOption("es", "Spain"),
    CountryOption("br", "Brazil"),
    CountryOption("mx", "Mexico"),
    CountryOption("au", "Australia"),
    CountryOption("jp", "Japan"),
    CountryOption("kr", "South Korea"),
    CountryOption("in", "India"),
    CountryOption("nl", "Netherlands"),
    CountryOption("se", "Sweden"),
    CountryOption("no", "Norway"),
    CountryOption("dk", "Denmark"),
    CountryOption("fi", "Finland"),
    CountryOption("pt", "Portugal"),
    CountryOption("pl", "Poland"),
    CountryOption("za", "South Africa"),
    CountryOption("sg", "Singapore"),
    CountryOption("my", "Malaysia"),
    CountryOption("ph", "Philippines"),
    CountryOption("th", "Thailand"),
    CountryOption("id", "Indonesia"),
    CountryOption("ar", "Argentina"),
    CountryOption("cl", "Chile"),
    CountryOption("co", "Colombia"),
    CountryOption("pe", "Peru"),
]

_ALL_COUNTRY_CODES = [country.value for country in COUNTRIES]

STREAMING_SERVICES = [
    StreamingService("netflix", "Netflix", 8, _ALL_COUNTRY_CODES),
    StreamingService("prime-video", "Prime Video", 9, _ALL_COUNTRY_CODES),
    StreamingService(
        "disney-plus",
        "Disney+",
        337,
        [
            "us", "ca", "gb", "fr", "de", "it", "es", "au", "jp", "kr",
            "in", "nl", "se", "no", "dk", "fi", "pt", "pl", "sg", "my",
            "ph", "th", "id", "ar", "cl", "co", "pe", "mx", "br", "za",
        ],
    ),
    StreamingService("hulu", "Hulu", 15, ["us"]),
    StreamingService("max", "Max", 189, ["us", "mx", "br", "ar", "cl", "co", "pe"]),
    StreamingService("apple-tv-plus", "Apple TV+", 350, _ALL_COUNTRY_CODES),
    StreamingService("peacock", "Peacock", 386, ["us"]),
    StreamingService(
        "paramount-plus",
        "Paramount+",
        531,
        ["us", "ca", "gb", "au", "br", "mx", "ar", "cl", "co", "pe"],
    ),
]

DEFAULT_SERVICE_KEY = "netflix"
DEFAULT_COUNTRY = "us"


def get_service_by_key(service_key: Optional[str]) -> StreamingService:
    for service in STREAMING_SERVICES:
        if service.key == service_key:
            return service
    return STREAMING_SERVICES[0]


def get_country_by_code(country_code: Optional[str]) -> CountryOption:
    for country in COUNTRIES:
        if country.value == country_code:
            return country
    return COUNTRIES[0]


def get_countries_for_service(service_key: Optional[str]) -> List[CountryOption]:
    service = get_service_by_key(service_key)
    return [country for country in COUNTRIES if country.value in service.countries]


def get_valid_country_for_service(service_key: Optional[str], country_code: Optional[str] = None) -> str:
    """Return the requested country if the service streams there, else its first country."""
    countries = get_countries_for_service(service_key)
    if country_code and any(country.value == country_code for country in countries):
        return country_code
    return countries[0].value if countries else DEFAULT_COUNTRY
