from __future__ import annotations

import unittest

from retrieval.visibility import ChannelFacts
from retrieval.visibility import is_visible
from retrieval.visibility import visibility_context_for_channel


A, B, C = 1001, 1002, 1003


def _candidate(channel_id: int, guild_id, is_public, members=()):
    return ChannelFacts(
        channel_id=channel_id,
        guild_id=guild_id,
        is_public=is_public,
        member_ids=frozenset(members),
    )


class SameChannelTests(unittest.TestCase):
    def test_own_channel_is_always_visible(self):
        requester = visibility_context_for_channel(10, 5, [])
        for is_public in (True, False, None):
            for members in ((), (A,), (A, B)):
                self.assertTrue(is_visible(_candidate(10, None, is_public, members), requester))


class PublicChannelTests(unittest.TestCase):
    def test_public_visible_within_same_guild(self):
        requester = visibility_context_for_channel(20, 5, [A, C])
        self.assertTrue(is_visible(_candidate(10, 5, True, (A, B)), requester))

    def test_public_blocked_across_guilds(self):
        requester = visibility_context_for_channel(90, 9, [A, B])
        self.assertFalse(is_visible(_candidate(10, 5, True, (A, B)), requester))

    def test_public_blocked_when_either_guild_unknown(self):
        self.assertFalse(is_visible(_candidate(10, None, True), visibility_context_for_channel(20, 5, [A])))
        self.assertFalse(is_visible(_candidate(10, 5, True), visibility_context_for_channel(20, None, [A])))
        self.assertFalse(is_visible(_candidate(10, None, True), visibility_context_for_channel(20, None, [A])))

    def test_public_ignores_membership(self):
        requester = visibility_context_for_channel(20, 5, [C])
        self.assertTrue(is_visible(_candidate(10, 5, True, (A,)), requester))


class PrivateChannelTests(unittest.TestCase):
    def test_subset_audience_can_see(self):
        requester = visibility_context_for_channel(40, 5, [A, B])
        self.assertTrue(is_visible(_candidate(30, 5, False, (A, B)), requester))
        self.assertTrue(is_visible(_candidate(30, 5, False, (A, B, C)), requester))

    def test_superset_audience_cannot_see(self):
        requester = visibility_context_for_channel(40, 5, [A, B, C])
        self.assertFalse(is_visible(_candidate(30, 5, False, (A, B)), requester))

    def test_empty_requester_fails_closed(self):
        requester = visibility_context_for_channel(40, 5, [])
        self.assertFalse(is_visible(_candidate(30, 5, False, (A, B)), requester))

    def test_unrecorded_candidate_membership_fails_closed(self):
        requester = visibility_context_for_channel(40, 5, [A])
        self.assertFalse(is_visible(_candidate(30, 5, False, ()), requester))

    def test_unknown_visibility_is_treated_as_private(self):
        requester = visibility_context_for_channel(40, 5, [A, C])
        self.assertFalse(is_visible(_candidate(30, 5, None, (A, B)), requester))
        self.assertTrue(is_visible(_candidate(30, 5, None, (A, B, C)), requester))

    def test_private_dm_reaches_other_dm_with_same_pair(self):
        requester = visibility_context_for_channel(41, None, [A, 7])
        self.assertTrue(is_visible(_candidate(31, None, False, (A, 7)), requester))


if __name__ == "__main__":
    unittest.main()
