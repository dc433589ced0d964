# SPDX-License-Identifier: Apache-2.0
"""
Remote Runnable Client Tests

Unit tests for the option splitter, payload codec, SSE parser, event-log
converter, transport and the RemoteRunnable client. HTTP is served by
`httpx.MockTransport`; nothing here touches the network.
"""
