# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import unittest

from shared.chat_ids import (
    InvalidChatRoomId,
    build_chat_room_id,
    parse_chat_room_id,
)


class ChatIdsTest(unittest.TestCase):

    def test_build_and_parse(self):
        room_id = build_chat_room_id("L1", "buyer", "seller")
        self.assertEqual(room_id, "chat_L1_buyer_seller")

        key = parse_chat_room_id(room_id)
        self.assertEqual(key.listing_id, "L1")
        self.assertEqual(key.participants, ("buyer", "seller"))
        self.assertEqual(key.chat_room_id, room_id)

    def test_other_participant(self):
        key = parse_chat_room_id("chat_L1_buyer_seller")
        self.assertEqual(key.other_participant("buyer"), "seller")
        self.assertEqual(key.other_participant("seller"), "buyer")
        with self.assertRaises(InvalidChatRoomId):
            key.other_participant("stranger")

    def test_parse_rejects_malformed_ids(self):
        for room_id in (
            "",
            "chat_L1_buyer",
            "room_L1_buyer_seller",
            "chat_L1__seller",
            "chat_L1_buyer_seller_extra",
        ):
            with self.subTest(room_id=room_id):
                with self.assertRaises(InvalidChatRoomId):
                    parse_chat_room_id(room_id)

    def test_build_rejects_separator_and_self_chat(self):
        with self.assertRaises(InvalidChatRoomId):
            build_chat_room_id("L_1", "buyer", "seller")
        with self.assertRaises(InvalidChatRoomId):
            build_chat_room_id("L1", "", "seller")
        with self.assertRaises(InvalidChatRoomId):
            build_chat_room_id("L1", "same", "same")


if __name__ == "__main__":
    unittest.main()
