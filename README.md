# acistore

`acistore` keeps container images (ACIs) on disk in a content-addressable
store. It also has helpers for container networking: network definition
files, a record of each pod's active networks, CIDR arithmetic, and a static
IP address allocator that can run as a network plugin command.

## Installation

```
pip install acistore
```

To run the tests as well:

```
pip install "acistore[test]"
pytest
```

## The image store

`acistore.store.Store(base)` keeps its data under one base directory:

- a blob store (`acistore.blobstore.BlobStore`) holding the uncompressed
  image archives,
- a second blob store holding each image's manifest as JSON,
- a SQLite database (`acistore.db.DB`) holding import records
  (`acistore.aciinfo.ACIInfo`) and remote records (`acistore.remote.Remote`),
- a tree store directory (`acistore.tree.TreeStore`) for unpacked images.

Each image is stored under a key taken from the SHA-512 of its uncompressed
tar archive: `sha512-` followed by the first half of the digest in hex. Gzip,
bzip2 and xz images are detected from their first bytes and decompressed
before they are hashed. An image must hold a `manifest` with
`"acKind": "ImageManifest"` and a `name`.

```python
from acistore.store import Store

store = Store("/var/lib/acistore")

with open("app.aci", "rb") as image:
    key = store.write_aci(image, latest=False)

# A unique prefix of a key, at least "sha512-" plus two hex digits,
# resolves to the full key. Longer keys are cut to the full key length.
full_key = store.resolve_key(key[:12])

manifest = store.get_image_manifest(full_key)   # a dict

with store.read_stream(full_key) as blob:
    header = blob.read(512)
```

Errors are raised as `acistore.store.StoreError`, for example
`"wrong key prefix"`, `"key too short"`, `"no keys found"` or an ambiguous
key.

`Store.get_aci(name, labels)` returns the key of the best image for an app
name. `labels` is a mapping of label names to values, and every one must be
present in the image manifest. When no `version` label is asked for, images
imported with `latest=True` come first; after that the most recently imported
image wins. If nothing matches, `StoreError("aci not found")` is raised.

Remote records map an image URL to its signature URL, ETag and blob key:

```python
from acistore.remote import Remote

store.write_remote(Remote(aci_url="https://example.com/app.aci", blob_key=key))
remote = store.get_remote("https://example.com/app.aci")   # None if unknown
```

`Store.check_tree_store(key)` recomputes the hash of an unpacked image tree
and compares it with the `hash` file saved in that tree, raising
`acistore.tree.TreeStoreError` if they differ. `Store.get_tree_store_path(key)`
and `Store.get_tree_store_rootfs(key)` give the tree's directory and its root
filesystem. `TreeStore.remove(key)`, `TreeStore.is_rendered(key)` and
`TreeStore.hash(key)` work on the tree directories directly.

`Store.dump(hex_output)` prints every stored key with the first 128 bytes of
its value, as text or in hex.

## Pod paths

`acistore.paths` builds the standard paths inside a pod directory, such as
`stage1_rootfs_path(root)`, `app_rootfs_path(root, image_id)`,
`image_manifest_path(root, image_id)` and `pod_manifest_path(root)`.
`metadata_service_public_url()` gives the metadata service URL and
`get_rkt_lock_fd()` reads the lock file descriptor from `RKT_LOCK_FD`.

## Network configuration

- `acistore.netconf.load_net(path)` reads a JSON network definition into a
  `NetConf` and records the file it came from.
- `load_nets(net_dir, rkt_root)` loads the definitions in `net_dir` in
  file-name order (the first definition of a name wins). It adds the stage1
  default network unless one called `default` is already defined.
- `IfConfig` is the address report a network plugin prints;
  `print_if_config(conf)` writes it to standard output.
- `acistore.netinfo.save(root, infos)` and `load(root)` write and read a
  pod's `net-info.json`.
- `acistore.cidr` has `parse_cidr`, `next_ip`, `prev_ip` and `network`.
- `acistore.ipconfig.IPConfig` holds an interface address, gateway and
  routes, with `from_json` and `to_json`.

## Static IP address management

`acistore.allocator.IPAllocator(conf, store)` hands out addresses of a subnet
round-robin, or from a `rangeStart`–`rangeEnd` range within it. `get` never
hands out the configured gateway; `get_ptp` allocates an even gateway
address and the odd address after it, for point-to-point links. Running out
of addresses raises `AllocationError`. `load_ipam_config(path)` reads the
`ipam` section of a network definition.

`acistore.diskbackend.DiskStore(network, data_dir)` records each reservation
as a file named after the address and holding the container ID. The default
`data_dir` is `/var/lib/rkt/networks`.

The `acistore-static-ipam` command runs the allocator as a plugin. It takes
all of its input from environment variables:

| Variable | Meaning |
| --- | --- |
| `RKT_NETPLUGIN_COMMAND` | `ADD` or `DEL` |
| `RKT_NETPLUGIN_CONTID` | container UUID |
| `RKT_NETPLUGIN_NETNS` | path of the container's network namespace |
| `RKT_NETPLUGIN_IFNAME` | interface name |
| `RKT_NETPLUGIN_NETCONF` | path of the network definition file |
| `RKT_NETPLUGIN_NETNAME` | network name |
| `RKT_NETPLUGIN_IPAMPATH` | colon-separated plugin search path |

All of them must be set. The network definition needs an `ipam` section:

```json
{
    "name": "mynet",
    "ipam": {
        "type": "static",
        "subnet": "10.1.2.0/24",
        "routes": ["0.0.0.0/0"]
    }
}
```

Set `"type"` to `"static-ptp"` for point-to-point pairs.

```
RKT_NETPLUGIN_COMMAND=ADD RKT_NETPLUGIN_CONTID=00000000-0000-0000-0000-000000000001 \
RKT_NETPLUGIN_NETNS=/var/run/netns/pod RKT_NETPLUGIN_IFNAME=eth0 \
RKT_NETPLUGIN_NETCONF=/etc/rkt/net.d/10-mynet.conf RKT_NETPLUGIN_NETNAME=mynet \
RKT_NETPLUGIN_IPAMPATH=/usr/lib/rkt/plugins/net \
acistore-static-ipam
```

On `ADD` the command prints the allocated `IPConfig` as indented JSON. On
`DEL` it releases every address the container holds. It exits with status 1
if a variable is missing, the command is unknown, or the work fails.

## What it does not do

- It does not unpack images into the tree store; it can check, hash and
  remove trees that are already there.
- It does not fetch images or verify signatures; remote records are only
  stored and looked up.
- It does not create network namespaces, interfaces, bridges, routes or
  masquerading rules, and does not run network plugins. The static
  allocator only decides and records addresses; `NETNS`, `IFNAME` and
  `IPAMPATH` are checked for presence but not used.