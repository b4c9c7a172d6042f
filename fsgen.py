#!/usr/bin/env python3
# Generate-and-install driver for fsgen HDFS images. Run on the namenode.
# usage: DATANODES="dn1 dn2" STORAGE_DIRS="/dfs/dn1 /dfs/dn2" ./fsgen.py load_fsgen_dns_par /tmp/fsgen
from fsgen_util.cli import main

if __name__ == "__main__":
    main()
