from .directory import LocationCatalog, LocationDirectory, RemoteLocationDirectory, email_domain
from .models import LocationRef

__all__ = ["LocationCatalog", "LocationDirectory", "LocationRef", "RemoteLocationDirectory", "email_domain"]
