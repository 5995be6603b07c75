from db.models.visit import Visit
from db.models.lead import Lead
from db.models.contact import Contact
from db.models.contact_media import ContactMedia

__all__ = [
    "Visit",
    "Lead",
    "Contact",
    "ContactMedia",
]
