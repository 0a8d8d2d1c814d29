from pickup_sms.infrastructure.persistence import SOURCE_INBOUND_STOP, SOURCE_MANUAL

PHONE = "+447400123456"


class TestOptOutLedger:
    def test_add_then_lookup(self, ledger):
        assert not ledger.is_opted_out(PHONE)
        ledger.add(PHONE, source=SOURCE_MANUAL, note="asked on the phone")
        assert ledger.is_opted_out(PHONE)

    def test_remove(self, ledger):
        ledger.add(PHONE)
        assert ledger.remove(PHONE) is True
        assert not ledger.is_opted_out(PHONE)
        assert ledger.remove(PHONE) is False

    def test_repeat_add_is_an_upsert(self, ledger):
        ledger.add(PHONE, source=SOURCE_MANUAL, note="first")
        ledger.add(PHONE, source=SOURCE_INBOUND_STOP, note="STOP")

        assert ledger.count() == 1
        record = ledger.get(PHONE)
        assert record.source == SOURCE_INBOUND_STOP
        assert record.note == "STOP"

    def test_keys_are_not_normalized(self, ledger):
        ledger.add(PHONE)
        assert not ledger.is_opted_out("07400123456")

    def test_list_and_search(self, ledger):
        ledger.add("+447400123456", note="rude reply")
        ledger.add("+447400123457", note="complaint")
        ledger.add("+447911000000")

        assert len(ledger.list(limit=10)) == 3
        assert len(ledger.list(limit=2)) == 2
        assert [o.phone_e164 for o in ledger.search("complaint")] == ["+447400123457"]
        assert {o.phone_e164 for o in ledger.search("7400123")} == {"+447400123456", "+447400123457"}

    def test_search_treats_wildcards_literally(self, ledger):
        ledger.add("+447400123456", note="100% angry")
        ledger.add("+447400123457", note="wrong_number")
        ledger.add("+447911000000", note="plain")

        assert [o.phone_e164 for o in ledger.search("%")] == ["+447400123456"]
        assert [o.phone_e164 for o in ledger.search("_")] == ["+447400123457"]
        assert ledger.search("1%a") == []
