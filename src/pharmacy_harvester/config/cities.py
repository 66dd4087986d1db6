"""Static city registry: slug -> search center and radius."""
from typing import Dict, List, Mapping, Optional

from ..exceptions import MissingCityConfigError
from ..models import CityCenter

MUNICIPALITIES = [
    "Andrijevica", "Bar", "Berane", "Bijelo Polje", "Budva", "Cetinje", "Danilovgrad",
    "Gusinje", "Herceg Novi", "Kolašin", "Kotor", "Mojkovac", "Nikšić", "Petnjica", "Plav",
    "Pljevlja", "Plužine", "Podgorica", "Rožaje", "Šavnik", "Tivat", "Tuzi", "Ulcinj",
    "Žabljak", "Zeta",
]

# slug: (lat, lng, radius_m, name_me, name_en)
CITY_COORDINATES = {
    "podgorica": (42.4304, 19.2594, 15000, "Podgorica", "Podgorica"),
    "niksic": (42.7731, 18.9447, 10000, "Nikšić", "Niksic"),
    "herceg-novi": (42.4519, 18.5375, 8000, "Herceg Novi", "Herceg Novi"),
    "berane": (42.8469, 19.8658, 8000, "Berane", "Berane"),
    "bar": (42.0947, 19.0904, 8000, "Bar", "Bar"),
    "bijelo-polje": (43.0356, 19.7475, 8000, "Bijelo Polje", "Bijelo Polje"),
    "cetinje": (42.3911, 18.9238, 8000, "Cetinje", "Cetinje"),
    "pljevlja": (43.3575, 19.3581, 8000, "Pljevlja", "Pljevlja"),
    "kotor": (42.4247, 18.7712, 6000, "Kotor", "Kotor"),
    "tivat": (42.4370, 18.6936, 6000, "Tivat", "Tivat"),
    "budva": (42.2864, 18.8400, 6000, "Budva", "Budva"),
    "ulcinj": (41.9297, 19.2047, 6000, "Ulcinj", "Ulcinj"),
    "kolasin": (42.8222, 19.5217, 6000, "Kolašin", "Kolasin"),
    "mojkovac": (42.9603, 19.5839, 6000, "Mojkovac", "Mojkovac"),
    "rozaje": (42.8411, 20.1664, 6000, "Rožaje", "Rozaje"),
    "plav": (42.5950, 19.9447, 5000, "Plav", "Plav"),
    "zabljak": (43.1544, 19.1239, 5000, "Žabljak", "Zabljak"),
    "andrijevica": (42.7356, 19.7939, 5000, "Andrijevica", "Andrijevica"),
    "danilovgrad": (42.5508, 19.1036, 6000, "Danilovgrad", "Danilovgrad"),
    "golubovci": (42.3453, 19.2869, 5000, "Golubovci", "Golubovci"),
    "tuzi": (42.3661, 19.3239, 5000, "Tuzi", "Tuzi"),
    "petnjica": (42.9492, 19.9061, 4000, "Petnjica", "Petnjica"),
    "gusinje": (42.5531, 19.8319, 4000, "Gusinje", "Gusinje"),
    "pluzine": (43.1544, 18.8447, 4000, "Plužine", "Pluzine"),
    "savnik": (43.0169, 19.0961, 4000, "Šavnik", "Savnik"),
}

CITY_ALIASES = {"zeta": "golubovci"}


class CityRegistry:
    """Resolves a city slug to its seed coordinates."""

    def __init__(self, cities: Optional[Mapping[str, CityCenter]] = None,
                 aliases: Optional[Mapping[str, str]] = None):
        if cities is None:
            cities = {
                slug: CityCenter(slug, lat, lng, radius, name_me, name_en)
                for slug, (lat, lng, radius, name_me, name_en) in CITY_COORDINATES.items()
            }
        self._cities: Dict[str, CityCenter] = dict(cities)
        self._aliases: Dict[str, str] = dict(CITY_ALIASES if aliases is None else aliases)

    def get(self, slug: str) -> Optional[CityCenter]:
        if not slug:
            return None
        key = slug.strip().lower()
        return self._cities.get(self._aliases.get(key, key))

    def resolve(self, slug: str) -> CityCenter:
        """Return the center for ``slug`` or raise MissingCityConfigError."""
        center = self.get(slug)
        if center is None:
            raise MissingCityConfigError(slug)
        return center

    def slugs(self) -> List[str]:
        return sorted(self._cities)
