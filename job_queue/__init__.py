"""
Delivery queue: paces a conversation's messages into its visible log.

- scheduler: real asyncio clock and a manual virtual clock for tests
- delay_policy: explicit, interactive and reading-time delays
- message_queue: the drain loop, suspension on interactive messages, disposal
"""
