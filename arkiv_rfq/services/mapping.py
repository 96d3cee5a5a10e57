import pydantic

from arkiv_rfq.models.rfq_models import RFQ
from arkiv_rfq.models.store_models import Entity
from arkiv_rfq.utils.errors import ParseEntityError


def entity_to_rfq(entity: Entity) -> RFQ:
    try:
        return RFQ.model_validate(entity.data)
    except pydantic.ValidationError as e:
        raise ParseEntityError(str(e), entity_key=entity.entity_key)


def rfq_to_entity_data(rfq: RFQ) -> dict:
    return rfq.to_camel_case_dict()
