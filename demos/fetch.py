import asyncio
import logging
import sys

import unireq


def response_str(response: unireq.Response, body: str) -> str:
    sep = '-------------------------'
    result = f'\n{sep}\nstatus: {response.status_code}\n'
    result += f'content length: {response.content_length or "N/A"}\n'
    result += '\n'.join(f'{k}: {v}' for k, v in response.headers.multi_items())
    result += f'\n\n{body}\n{sep}'
    return result


async def main() -> int:
    if len(sys.argv) < 2:
        url = input('Enter a URL to fetch: ').strip()
    else:
        url = sys.argv[1].strip()

    if '-v' in sys.argv:
        logging.basicConfig(level=logging.DEBUG)

    request = unireq.Request(
        url=url,
        user_agent='unireq-demo/0.1',
        compression=unireq.Compression.gzip(),
        timeout=10,
        max_redirects=5,
    )

    exit_code = 1
    async with unireq.RequestExecutor() as executor:
        try:
            async with await executor.execute(request) as response:
                print(response_str(response, await response.body.text()))
            exit_code = 0
        except unireq.RedirectLimitError as exc:
            print(f'Too many redirects, last status was {exc.response.status_code}')
            await exc.response.aclose()
        except unireq.TransportError as exc:
            if exc.timeout:
                print('Request timed out')
            else:
                print(f'Error fetching {url}, check your network connection {exc}')
        except unireq.ExecutionError as exc:
            print(f'Invalid request: {exc}')

    return exit_code


if __name__ == '__main__':
    sys.exit(
        asyncio.run(main())
    )
