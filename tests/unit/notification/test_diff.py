import unittest

from notification.diff import new_entries


class TestNewEntries(unittest.TestCase):

    def test_returns_keys_added_in_after(self):
        before = {'m1': 'hi'}
        after = {'m1': 'hi', 'm2': 'there', 'm3': 'again'}

        self.assertEqual(new_entries(before, after), [('m2', 'there'), ('m3', 'again')])

    def test_no_change_yields_empty(self):
        log = {'m1': 'hi', 'm2': 'there'}
        self.assertEqual(new_entries(log, dict(log)), [])

    def test_missing_before_makes_everything_new(self):
        after = {'m1': 'hi', 'm2': 'there'}
        self.assertEqual(new_entries(None, after), [('m1', 'hi'), ('m2', 'there')])
        self.assertEqual(new_entries({}, after), [('m1', 'hi'), ('m2', 'there')])

    def test_missing_after_yields_empty(self):
        self.assertEqual(new_entries({'m1': 'hi'}, None), [])
        self.assertEqual(new_entries({'m1': 'hi'}, {}), [])

    def test_changed_value_under_existing_key_is_not_new(self):
        """Only key membership matters; edits to existing entries are ignored."""
        self.assertEqual(new_entries({'m1': 'hi'}, {'m1': 'edited'}), [])

    def test_order_follows_after(self):
        after = {'z': 1, 'a': 2, 'm': 3}
        self.assertEqual([k for k, _ in new_entries({}, after)], ['z', 'a', 'm'])


if __name__ == '__main__':
    unittest.main()
