from nephro_client.resources.auth import AuthApi
from nephro_client.resources.base import ResourceApi
from nephro_client.resources.dialysis import DialysisApi
from nephro_client.resources.institutions import InstitutionsApi
from nephro_client.resources.laboratory import LaboratoryApi
from nephro_client.resources.patients import PatientsApi
from nephro_client.resources.uploads import UploadsApi
from nephro_client.resources.users import UsersApi

__all__ = [
    "AuthApi",
    "DialysisApi",
    "InstitutionsApi",
    "LaboratoryApi",
    "PatientsApi",
    "ResourceApi",
    "UploadsApi",
    "UsersApi",
]
