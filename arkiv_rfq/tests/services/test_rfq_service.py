from unittest.mock import AsyncMock, Mock, patch

import pytest

from arkiv_rfq.config import Config
from arkiv_rfq.models.rfq_models import (
    RFQ,
    Fill,
    PaginationOptions,
    QueryFilters,
    RFQStatus,
    SortBy,
    SortOptions,
    TokenInfo,
    UpdateRFQInput,
)
from arkiv_rfq.services.mapping import entity_to_rfq, rfq_to_entity_data
from arkiv_rfq.services.rfq_service import RFQService
from arkiv_rfq.tests.fixtures.rfq_service import BASE_TOKEN, OTHER_TOKEN, QUOTE_TOKEN
from arkiv_rfq.utils.errors import (
    NetworkError,
    OwnershipError,
    ParseEntityError,
    RFQNotFoundError,
    SignatureError,
    ValidationError,
)


@pytest.mark.asyncio()
async def test_create_rfq(rfq_service: RFQService, rfq_input, signer, memory_store, clock):
    rfq = await rfq_service.create_rfq(rfq_input)

    assert rfq.status == RFQStatus.OPEN
    assert rfq.created_at == rfq.updated_at == clock.now
    assert rfq.creator == signer.address.lower()
    assert rfq.id.startswith(f'{signer.address.lower()}-{clock.now}-')
    assert rfq.base_token == rfq_input.base_token
    assert rfq.quote_token == rfq_input.quote_token
    assert rfq.base_amount == '1000000000000000000'
    assert rfq.quote_amount == '2000000000'
    assert rfq.filled_amount == '0'
    assert rfq.fills == []
    assert memory_store.count('RFQ') == 1


@pytest.mark.asyncio()
async def test_create_rfq_ids_unique_within_same_second(rfq_service: RFQService, rfq_input):
    ids = {(await rfq_service.create_rfq(rfq_input)).id for _ in range(5)}
    assert len(ids) == 5


@pytest.mark.asyncio()
async def test_create_rfq_accepts_camel_case_dict(rfq_service: RFQService, clock):
    rfq = await rfq_service.create_rfq({
        'baseToken': {'address': BASE_TOKEN, 'chainId': 1},
        'quoteToken': {'address': QUOTE_TOKEN, 'chainId': 10},
        'baseAmount': '5',
        'quoteAmount': '7',
        'expiresIn': clock.now + 60,
        'minFillAmount': '1',
    })
    assert rfq.quote_token.chain_id == 10
    assert rfq.min_fill_amount == '1'


@pytest.mark.asyncio()
async def test_create_rfq_invalid_address_never_reaches_store(
    rfq_service: RFQService, rfq_input, memory_store
):
    rfq_input.base_token = TokenInfo(address='invalid-address', chain_id=1)
    with patch.object(memory_store, 'write_entity', new_callable=AsyncMock) as write_mock:
        with pytest.raises(ValidationError, match='baseToken.address'):
            await rfq_service.create_rfq(rfq_input)
        write_mock.assert_not_awaited()
    assert memory_store.count() == 0


@pytest.mark.asyncio()
async def test_create_rfq_malformed_dict(rfq_service: RFQService):
    with pytest.raises(ValidationError, match='malformed'):
        await rfq_service.create_rfq({'baseAmount': '1'})


@pytest.mark.asyncio()
async def test_create_rfq_without_signer(rfq_service: RFQService, rfq_input, memory_store):
    service = rfq_service.with_signer(None)
    with pytest.raises(SignatureError, match='No signer configured'):
        await service.create_rfq(rfq_input)
    assert memory_store.count() == 0


@pytest.mark.asyncio()
async def test_create_rfq_signing_failure(rfq_service: RFQService, rfq_input, memory_store):
    failing_signer = Mock()
    failing_signer.get_address = AsyncMock(return_value='0x1111111111111111111111111111111111111111')
    failing_signer.sign_payload = AsyncMock(side_effect=RuntimeError('wallet locked'))

    with pytest.raises(SignatureError) as exc_info:
        await rfq_service.with_signer(failing_signer).create_rfq(rfq_input)

    assert isinstance(exc_info.value.cause, RuntimeError)
    assert memory_store.count() == 0


@pytest.mark.asyncio()
async def test_stored_signature_binds_full_record(rfq_service: RFQService, rfq_input, memory_store, clock):
    rfq = await rfq_service.create_rfq(rfq_input)
    entity = await memory_store.get_entity('RFQ', rfq.id)
    assert rfq_service.verify_rfq_signature(rfq, entity.signature)

    clock.advance()
    updated = await rfq_service.update_rfq(rfq.id, UpdateRFQInput(quote_amount='3000000000'))
    new_entity = await memory_store.get_entity('RFQ', rfq.id)
    assert new_entity.signature != entity.signature
    assert rfq_service.verify_rfq_signature(updated, new_entity.signature)
    assert not rfq_service.verify_rfq_signature(updated, entity.signature)


@pytest.mark.asyncio()
async def test_get_rfq(rfq_service: RFQService, rfq_input):
    rfq = await rfq_service.create_rfq(rfq_input)

    assert await rfq_service.get_rfq(rfq.id) == rfq
    assert await rfq_service.get_rfq('missing-id') is None
    with pytest.raises(ValidationError):
        await rfq_service.get_rfq('   ')


@pytest.mark.asyncio()
async def test_update_rfq_by_creator(rfq_service: RFQService, rfq_input, clock):
    rfq = await rfq_service.create_rfq(rfq_input)
    clock.advance(5)

    updated = await rfq_service.update_rfq(rfq.id, {'baseAmount': '1500000000000000000'})

    assert updated.id == rfq.id
    assert updated.base_amount == '1500000000000000000'
    assert updated.quote_amount == rfq.quote_amount
    assert updated.created_at == rfq.created_at
    assert updated.updated_at == rfq.updated_at + 5
    assert (await rfq_service.get_rfq(rfq.id)) == updated


@pytest.mark.asyncio()
async def test_update_rfq_fills(rfq_service: RFQService, rfq_input, clock):
    rfq = await rfq_service.create_rfq(rfq_input)
    fill = Fill(acceptor=OTHER_TOKEN, amount='10', timestamp=clock.now, tx_hash='0xabc')

    updated = await rfq_service.update_rfq(rfq.id, UpdateRFQInput(filled_amount='10', fills=[fill]))

    assert updated.fills == [fill]
    assert updated.filled_amount == '10'


@pytest.mark.asyncio()
async def test_update_rfq_validates_new_amounts(rfq_service: RFQService, rfq_input, memory_store):
    rfq = await rfq_service.create_rfq(rfq_input)
    with pytest.raises(ValidationError, match='quoteAmount'):
        await rfq_service.update_rfq(rfq.id, UpdateRFQInput(quote_amount='0'))
    assert (await rfq_service.get_rfq(rfq.id)).quote_amount == rfq.quote_amount


@pytest.mark.asyncio()
async def test_update_rfq_by_non_creator(rfq_service: RFQService, rfq_input, other_signer):
    rfq = await rfq_service.create_rfq(rfq_input)
    with pytest.raises(OwnershipError, match='creator'):
        await rfq_service.with_signer(other_signer).update_rfq(rfq.id, {'baseAmount': '1'})
    with pytest.raises(OwnershipError):
        await rfq_service.with_signer(other_signer).cancel_rfq(rfq.id)
    assert (await rfq_service.get_rfq(rfq.id)).status == RFQStatus.OPEN


@pytest.mark.asyncio()
async def test_ownership_check_is_case_insensitive(rfq_service: RFQService, rfq_input, signer):
    rfq = await rfq_service.create_rfq(rfq_input)
    upper_signer = Mock()
    upper_signer.get_address = AsyncMock(return_value='0x' + signer.address[2:].upper())
    upper_signer.sign_payload = signer.sign_payload

    cancelled = await rfq_service.with_signer(upper_signer).cancel_rfq(rfq.id)
    assert cancelled.status == RFQStatus.CANCELLED


@pytest.mark.asyncio()
@pytest.mark.parametrize('terminal', [RFQStatus.CANCELLED, RFQStatus.FILLED])
async def test_update_terminal_rfq_rejected(
    rfq_service: RFQService, rfq_input, other_signer, terminal
):
    rfq = await rfq_service.create_rfq(rfq_input)
    await rfq_service.update_rfq(rfq.id, UpdateRFQInput(status=terminal))

    with pytest.raises(OwnershipError, match='non-open'):
        await rfq_service.update_rfq(rfq.id, UpdateRFQInput(status=RFQStatus.OPEN))
    with pytest.raises(OwnershipError):
        await rfq_service.with_signer(other_signer).update_rfq(rfq.id, {'baseAmount': '2'})
    with pytest.raises(OwnershipError):
        await rfq_service.cancel_rfq(rfq.id)
    assert (await rfq_service.get_rfq(rfq.id)).status == terminal


@pytest.mark.asyncio()
async def test_update_missing_rfq(rfq_service: RFQService):
    with pytest.raises(RFQNotFoundError):
        await rfq_service.update_rfq('nothing-here', {'baseAmount': '1'})
    with pytest.raises(RFQNotFoundError):
        await rfq_service.cancel_rfq('nothing-here')


@pytest.mark.asyncio()
async def test_update_without_signer_skips_store(rfq_service: RFQService, rfq_input, memory_store):
    rfq = await rfq_service.create_rfq(rfq_input)
    with patch.object(memory_store, 'get_entity', new_callable=AsyncMock) as get_mock:
        with pytest.raises(SignatureError):
            await rfq_service.with_signer(None).cancel_rfq(rfq.id)
        get_mock.assert_not_awaited()


@pytest.mark.asyncio()
async def test_cancel_rfq(rfq_service: RFQService, rfq_input, clock):
    rfq = await rfq_service.create_rfq(rfq_input)
    clock.advance()

    cancelled = await rfq_service.cancel_rfq(rfq.id)

    assert cancelled.status == RFQStatus.CANCELLED
    assert cancelled.updated_at > rfq.updated_at
    assert cancelled.base_amount == rfq.base_amount


@pytest.mark.asyncio()
async def test_cancel_in_same_second_moves_updated_at(rfq_service: RFQService, rfq_input, clock):
    rfq = await rfq_service.create_rfq(rfq_input)
    updated = await rfq_service.update_rfq(rfq.id, {'quoteAmount': '3000000000'})
    cancelled = await rfq_service.cancel_rfq(rfq.id)

    assert clock.now == rfq.created_at
    assert rfq.updated_at < updated.updated_at < cancelled.updated_at
    assert (await rfq_service.get_rfq(rfq.id)).updated_at == cancelled.updated_at


@pytest.mark.asyncio()
async def test_delete_rfq(rfq_service: RFQService, rfq_input, memory_store, other_signer):
    rfq = await rfq_service.create_rfq(rfq_input)
    await rfq_service.cancel_rfq(rfq.id)

    with pytest.raises(OwnershipError):
        await rfq_service.with_signer(other_signer).delete_rfq(rfq.id)
    assert memory_store.count() == 1

    # deletion is allowed whatever the status
    await rfq_service.delete_rfq(rfq.id)
    assert await rfq_service.get_rfq(rfq.id) is None

    with pytest.raises(RFQNotFoundError):
        await rfq_service.delete_rfq(rfq.id)


@pytest.mark.asyncio()
async def test_query_by_token_pair(rfq_service: RFQService, rfq_input, clock):
    created = await rfq_service.create_rfq(rfq_input)
    await rfq_service.create_rfq({
        'baseToken': {'address': OTHER_TOKEN, 'chainId': 1},
        'quoteToken': {'address': QUOTE_TOKEN, 'chainId': 1},
        'baseAmount': '2000000000000000000',
        'quoteAmount': '4000000000',
        'expiresIn': clock.now + 7200,
    })

    filters = rfq_service.filter_by_token_pair(BASE_TOKEN, 1, QUOTE_TOKEN, 1)
    result = await rfq_service.query_rfqs(filters)

    assert result.total == 1
    assert [rfq.id for rfq in result.rfqs] == [created.id]
    assert not result.has_more
    assert result.next_cursor is None


@pytest.mark.asyncio()
async def test_query_by_creator_and_status(rfq_service: RFQService, rfq_input, signer, other_signer):
    mine = await rfq_service.create_rfq(rfq_input)
    theirs = await rfq_service.with_signer(other_signer).create_rfq(rfq_input)
    await rfq_service.cancel_rfq(mine.id)

    result = await rfq_service.query_rfqs(rfq_service.filter_by_creator(signer.address))
    assert [rfq.id for rfq in result.rfqs] == [mine.id]

    result = await rfq_service.query_rfqs(QueryFilters(status=RFQStatus.OPEN))
    assert [rfq.id for rfq in result.rfqs] == [theirs.id]


@pytest.mark.asyncio()
async def test_query_pagination_and_sort(rfq_service: RFQService, rfq_input, clock):
    expirations = [clock.now + 300, clock.now + 100, clock.now + 200]
    for expires_in in expirations:
        rfq_input.expires_in = expires_in
        await rfq_service.create_rfq(rfq_input)

    sort = SortOptions(sort_by=SortBy.EXPIRATION, ascending=True)
    first = await rfq_service.query_rfqs(sort=sort, pagination=PaginationOptions(limit=2))
    assert first.total == 3
    assert first.has_more
    assert [rfq.expires_in for rfq in first.rfqs] == sorted(expirations)[:2]

    second = await rfq_service.query_rfqs(
        sort=sort, pagination=PaginationOptions(limit=2, cursor=first.next_cursor)
    )
    assert not second.has_more
    assert [rfq.expires_in for rfq in second.rfqs] == sorted(expirations)[2:]


@pytest.mark.asyncio()
async def test_query_defaults(rfq_service: RFQService, memory_store, config):
    with patch.object(memory_store, 'query_entities', new_callable=AsyncMock) as query_mock:
        query_mock.return_value.entities = []
        query_mock.return_value.total = 0
        query_mock.return_value.next_cursor = None
        result = await rfq_service.query_rfqs()

    kwargs = query_mock.await_args.kwargs
    assert kwargs['limit'] == config.DEFAULT_PAGE_LIMIT
    assert kwargs['sort'].field == 'createdAt'
    assert kwargs['sort'].order == 'desc'
    assert kwargs['filters'] == {}
    assert result.total == 0
    assert not result.has_more


@pytest.mark.asyncio()
async def test_store_write_retried_then_succeeds(rfq_service: RFQService, rfq_input, memory_store):
    real_write = memory_store.write_entity
    write_mock = AsyncMock(side_effect=[ConnectionError('reset'), ConnectionError('reset'), None])

    async def flaky_write(**kwargs):
        await write_mock(**kwargs)
        return await real_write(**kwargs)

    with patch.object(memory_store, 'write_entity', side_effect=flaky_write):
        rfq = await rfq_service.create_rfq(rfq_input)

    assert write_mock.await_count == 3
    assert memory_store.count() == 1
    assert rfq.status == RFQStatus.OPEN


@pytest.mark.asyncio()
async def test_store_failure_surfaces_network_error(rfq_service: RFQService, rfq_input, memory_store):
    apm_client = Mock()
    rfq_service.apm_client = apm_client
    with patch.object(
        memory_store, 'write_entity', new_callable=AsyncMock, side_effect=ConnectionError('down')
    ) as write_mock:
        with pytest.raises(NetworkError) as exc_info:
            await rfq_service.create_rfq(rfq_input)

    assert write_mock.await_count == 4
    assert exc_info.value.attempts == 4
    assert isinstance(exc_info.value.cause, ConnectionError)
    apm_client.capture_exception.assert_called_once()


@pytest.mark.asyncio()
async def test_malformed_entity(rfq_service: RFQService, memory_store):
    await memory_store.write_entity('RFQ', 'broken', {'id': 'broken', 'status': 'OPEN'})
    with pytest.raises(ParseEntityError):
        await rfq_service.get_rfq('broken')


@pytest.mark.asyncio()
async def test_entity_round_trip(memory_store, clock):
    rfq = RFQ(
        id='0xabc-1-ff',
        creator='0x1111111111111111111111111111111111111111',
        base_token=TokenInfo(address=BASE_TOKEN, chain_id=1),
        quote_token=TokenInfo(address=QUOTE_TOKEN, chain_id=8453),
        base_amount='123456789012345678901234567890',
        quote_amount='1',
        expires_in=clock.now + 10,
        status=RFQStatus.FILLED,
        created_at=clock.now,
        updated_at=clock.now + 3,
        filled_amount='1',
        fills=[Fill(acceptor=QUOTE_TOKEN, amount='1', timestamp=clock.now + 3, tx_hash='0x01')],
        counterparty_restrictions=[QUOTE_TOKEN],
    )
    entity = await memory_store.write_entity('RFQ', rfq.id, rfq_to_entity_data(rfq))

    assert entity.data['baseToken'] == {'address': BASE_TOKEN, 'chainId': 1}
    assert entity_to_rfq(entity) == rfq


@pytest.mark.asyncio()
@pytest.mark.parametrize('field,value', [
    ('base_amount', '1000\n'),
    ('quote_amount', '٢٠'),
])
async def test_create_rfq_rejects_non_ascii_or_padded_amounts(
    rfq_service: RFQService, rfq_input, memory_store, field, value
):
    setattr(rfq_input, field, value)
    with pytest.raises(ValidationError):
        await rfq_service.create_rfq(rfq_input)
    assert memory_store.count() == 0


@pytest.mark.asyncio()
async def test_expiration_window_comes_from_service_config(
    memory_store, signer, clock, retry_policy, rfq_input
):
    service = RFQService(
        store=memory_store,
        config=Config(MAX_EXPIRATION_SECONDS=600),
        signer=signer,
        retry_policy=retry_policy,
        clock=clock,
    )
    with pytest.raises(ValidationError, match='600 seconds'):
        await service.create_rfq(rfq_input)

    rfq_input.expires_in = clock.now + 600
    rfq = await service.create_rfq(rfq_input)
    with pytest.raises(ValidationError, match='600 seconds'):
        await service.update_rfq(rfq.id, {'expiresIn': clock.now + 601})


@pytest.mark.asyncio()
async def test_refused_mutation_is_logged(rfq_service: RFQService, rfq_input, other_signer):
    rfq = await rfq_service.create_rfq(rfq_input)

    with patch('arkiv_rfq.services.rfq_service.logger') as logger_mock:
        with pytest.raises(OwnershipError):
            await rfq_service.with_signer(other_signer).delete_rfq(rfq.id)

    message, args = logger_mock.warning.call_args.args
    assert message % args == 'ownership error: Only the RFQ creator can delete this RFQ'
    extra = logger_mock.warning.call_args.kwargs['extra']
    assert extra['rfq_id'] == rfq.id
    assert extra['signer'] == other_signer.address
