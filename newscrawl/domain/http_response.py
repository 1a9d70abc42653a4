from typing import Mapping, NamedTuple, Optional


class HttpResponse(NamedTuple):
    """Response from HTTP fetch operation."""
    status_code: int
    text: str
    headers: Optional[Mapping[str, str]] = None

    @property
    def content_type(self) -> Optional[str]:
        if not self.headers:
            return None
        return self.headers.get("Content-Type")

    def header(self, name: str) -> Optional[str]:
        if not self.headers:
            return None
        value = self.headers.get(name)
        if value is None:
            # plain dicts are case-sensitive, requests' CaseInsensitiveDict is not
            lowered = name.lower()
            for key, val in self.headers.items():
                if key.lower() == lowered:
                    return val
        return value
